# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import unittest

from bs4 import BeautifulSoup

from shared import sanitizer


class SanitizeRichTextTest(unittest.TestCase):

    def test_script_is_removed_with_its_content(self):
        result = sanitizer.sanitize_rich_text("<p>Hello</p><script>alert(1)</script>")
        self.assertEqual(result, "<p>Hello</p>")

    def test_paragraph_survives_unchanged(self):
        self.assertEqual(sanitizer.sanitize_rich_text("<p>Hello</p>"), "<p>Hello</p>")

    def test_event_handler_attributes_are_dropped(self):
        result = sanitizer.sanitize_rich_text('<p onclick="steal()">Hi</p>')
        self.assertEqual(result, "<p>Hi</p>")

    def test_javascript_href_is_dropped(self):
        result = sanitizer.sanitize_rich_text('<a href="javascript:alert(1)">x</a>')
        self.assertEqual(result, "<a>x</a>")

    def test_obfuscated_javascript_href_is_dropped(self):
        result = sanitizer.sanitize_rich_text('<a href=" java\tscript:alert(1)">x</a>')
        self.assertNotIn("href", result)

    def test_external_link_opens_safely(self):
        result = sanitizer.sanitize_rich_text('<a href="https://example.com">x</a>')
        link = BeautifulSoup(result, "html.parser").a
        self.assertEqual(link["href"], "https://example.com")
        self.assertEqual(link["target"], "_blank")
        self.assertEqual(" ".join(link["rel"]), "noopener noreferrer")

    def test_relative_link_is_kept_without_target(self):
        result = sanitizer.sanitize_rich_text('<a href="/memorial/jane">Jane</a>')
        link = BeautifulSoup(result, "html.parser").a
        self.assertEqual(link["href"], "/memorial/jane")
        self.assertIsNone(link.get("target"))

    def test_style_is_reduced_to_allowed_properties(self):
        result = sanitizer.sanitize_rich_text(
            '<span style="color: red; position: absolute; background: url(x.png)">x</span>'
        )
        span = BeautifulSoup(result, "html.parser").span
        self.assertEqual(span["style"], "color: red")

    def test_disallowed_tags_keep_their_text(self):
        result = sanitizer.sanitize_rich_text("<section><p>kept</p></section>")
        self.assertEqual(result, "<p>kept</p>")

    def test_forbidden_tags_drop_their_content(self):
        result = sanitizer.sanitize_rich_text(
            "<p>a</p><iframe src='https://evil.test'>inner</iframe><form><input></form>"
        )
        self.assertEqual(result, "<p>a</p>")

    def test_comments_are_removed(self):
        self.assertEqual(
            sanitizer.sanitize_rich_text("<p>a<!-- secret --></p>"), "<p>a</p>"
        )

    def test_text_profile_returns_escaped_text(self):
        self.assertEqual(
            sanitizer.sanitize_rich_text("<b>salt & pepper</b>", "text"),
            "salt &amp; pepper",
        )

    def test_message_profile_allows_only_web_links(self):
        result = sanitizer.sanitize_message(
            '<p>Call <a href="mailto:a@b.test">me</a></p><h1>Big</h1>'
        )
        self.assertEqual(result, "<p>Call <a>me</a></p>Big")

    def test_unknown_profile_is_rejected(self):
        with self.assertRaises(ValueError):
            sanitizer.sanitize_rich_text("<p>x</p>", "nope")

    def test_empty_input(self):
        self.assertEqual(sanitizer.sanitize_rich_text(None), "")
        self.assertEqual(sanitizer.sanitize_rich_text(""), "")


class SanitizePlainTextTest(unittest.TestCase):

    def test_strips_markup_and_collapses_whitespace(self):
        self.assertEqual(
            sanitizer.sanitize_plain_text("<b>Jane</b>  <script>x()</script>\n Doe"),
            "Jane Doe",
        )

    def test_block_elements_keep_words_apart(self):
        self.assertEqual(
            sanitizer.sanitize_plain_text("<p>one</p><p>two</p>"), "one two"
        )

    def test_result_is_not_escaped(self):
        self.assertEqual(sanitizer.sanitize_plain_text("Tom & Jerry"), "Tom & Jerry")

    def test_truncates_long_input(self):
        self.assertEqual(len(sanitizer.sanitize_plain_text("a" * 1500)), 1000)

    def test_empty_input(self):
        self.assertEqual(sanitizer.sanitize_plain_text(None), "")


class SanitizeUrlTest(unittest.TestCase):

    def test_accepts_web_urls(self):
        self.assertEqual(
            sanitizer.sanitize_url(" https://zoom.us/j/123 "), "https://zoom.us/j/123"
        )

    def test_rejects_other_schemes_and_relative_urls(self):
        for value in ("javascript:alert(1)", "ftp://files.test/a", "/relative", "https://"):
            with self.subTest(value=value):
                self.assertEqual(sanitizer.sanitize_url(value), "")


class HtmlToTextTest(unittest.TestCase):

    def test_counts_only_visible_text(self):
        self.assertEqual(
            sanitizer.html_to_text("<p>Hello <strong>world</strong></p>"), "Hello world"
        )


if __name__ == "__main__":
    unittest.main()
