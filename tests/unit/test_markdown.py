"""
Unit tests for Markdown image discovery and batch substitution.
"""

from mdimgup.core.markdown import apply_substitutions, extract_url, find_image_references


class TestFindImageReferences:
    """Tests for token discovery."""

    def test_tokens_are_captured_verbatim(self):
        text = '![a](img/one.png) text ![b](<my image.png> "Title")'
        refs = find_image_references(text)

        assert [r.token for r in refs] == ["img/one.png", '<my image.png> "Title"']
        assert [r.url for r in refs] == ["img/one.png", "my image.png"]

    def test_duplicates_are_all_reported(self):
        text = "![x](a.png)\n![y](a.png)\n![z](a.png)"
        assert [r.token for r in find_image_references(text)] == ["a.png"] * 3

    def test_offsets_point_at_the_token(self):
        text = "intro ![alt](pic.png) outro"
        ref = find_image_references(text)[0]
        assert text[ref.start:ref.end] == "pic.png"

    def test_plain_links_are_not_images(self):
        assert find_image_references("[link](page.md)") == []

    def test_percent_encoding_is_only_decoded_for_paths(self):
        ref = find_image_references("![c](photos/caf%C3%A9.png)")[0]
        assert ref.url == "photos/caf%C3%A9.png"
        assert ref.decoded_path == "photos/café.png"

    def test_remote_detection_is_case_insensitive(self):
        refs = find_image_references("![a](https://x.io/a.png) ![b](HTTP://x.io/b.png) ![c](c.png)")
        assert [r.is_remote for r in refs] == [True, True, False]


class TestExtractUrl:
    """Title and angle-bracket stripping."""

    def test_double_quoted_title(self):
        assert extract_url('pic.png "A title"') == "pic.png"

    def test_single_quoted_title(self):
        assert extract_url("pic.png 'A title'") == "pic.png"

    def test_angle_brackets_then_title(self):
        assert extract_url('<dir/my pic.png> "Cover"') == "dir/my pic.png"

    def test_plain_path_is_untouched(self):
        assert extract_url("dir/pic.png") == "dir/pic.png"

    def test_unbalanced_quote_is_not_a_title(self):
        assert extract_url('pic.png "oops') == 'pic.png "oops'


class TestApplySubstitutions:
    """Single-pass replacement of all tokens."""

    def test_every_occurrence_is_replaced(self):
        text = "![a](a.png) and again ![b](a.png)"
        new_text, found = apply_substitutions(text, [("a.png", "https://cdn/a.png")])

        assert new_text == "![a](https://cdn/a.png) and again ![b](https://cdn/a.png)"
        assert found == {"a.png"}

    def test_inserted_urls_are_not_rescanned(self):
        """A URL containing another token must survive intact."""
        text = "![](a.png) ![](b.png)"
        new_text, _ = apply_substitutions(text, [
            ("a.png", "https://cdn/x/b.png"),
            ("b.png", "https://cdn/y.png"),
        ])
        assert new_text == "![](https://cdn/x/b.png) ![](https://cdn/y.png)"

    def test_longer_token_wins_over_its_suffix(self):
        text = "![](big-img.png) ![](img.png)"
        new_text, found = apply_substitutions(text, [
            ("img.png", "U1"),
            ("big-img.png", "U2"),
        ])
        assert new_text == "![](U2) ![](U1)"
        assert found == {"img.png", "big-img.png"}

    def test_regex_metacharacters_are_literal(self):
        text = "![](a+(1).png)"
        new_text, _ = apply_substitutions(text, [("a+(1).png", "U")])
        assert new_text == "![](U)"

    def test_missing_tokens_are_not_reported(self):
        new_text, found = apply_substitutions("no images", [("a.png", "U")])
        assert new_text == "no images"
        assert found == set()

    def test_no_replacements(self):
        assert apply_substitutions("text", []) == ("text", set())
