import pytest

from stagegate.collaborators import Draft, HtmlFormatter


def _draft(**overrides):
    data = {
        "title": "Cats & Dogs",
        "meta_description": 'A "friendly" comparison',
        "body_paragraphs": ["First <b>paragraph</b>.", "Second."],
        "word_count": 3,
    }
    data.update(overrides)
    return Draft(**data)


def test_render_produces_escaped_html5_document():
    artifact = HtmlFormatter().render(_draft())

    assert artifact.html.startswith("<!DOCTYPE html>")
    assert "<title>Cats &amp; Dogs</title>" in artifact.html
    assert 'content="A &quot;friendly&quot; comparison"' in artifact.html
    assert "<p>First &lt;b&gt;paragraph&lt;/b&gt;.</p>" in artifact.html
    assert artifact.html.index("<head>") < artifact.html.index("<body>")
    assert artifact.word_count == 3


@pytest.mark.parametrize(
    "overrides",
    [{"title": "  "}, {"meta_description": ""}, {"body_paragraphs": []}],
)
def test_render_rejects_incomplete_drafts(overrides):
    with pytest.raises(ValueError):
        HtmlFormatter().render(_draft(**overrides))
