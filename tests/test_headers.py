import unittest

from local_assets.headers import MINIMAL_HEADERS, USER_AGENT, headers_for, match_domain
from local_assets.models import RefererRule


class TestMatchDomain(unittest.TestCase):
    def test_wildcard_matches_subdomain(self):
        self.assertTrue(match_domain("img.example.com", "*.example.com"))

    def test_wildcard_matches_bare_domain(self):
        self.assertTrue(match_domain("example.com", "*.example.com"))

    def test_wildcard_rejects_other_domain(self):
        self.assertFalse(match_domain("other.com", "*.example.com"))
        self.assertFalse(match_domain("notexample.com", "*.example.com"))

    def test_exact_pattern_does_not_match_subdomain(self):
        self.assertFalse(match_domain("img.example.com", "example.com"))
        self.assertTrue(match_domain("example.com", "example.com"))


class TestHeadersFor(unittest.TestCase):
    url = "https://img.plain.org/pics/a.png"

    def test_attempt_sequence_without_rules(self):
        first = headers_for(self.url, 0, ())
        self.assertEqual(first["Referer"], "")
        self.assertEqual(first["Origin"], "")
        self.assertEqual(first["User-Agent"], USER_AGENT)
        self.assertIn("image/", first["Accept"])

        second = headers_for(self.url, 1, ())
        self.assertEqual(second["Referer"], self.url)
        self.assertNotIn("Origin", second)

        third = headers_for(self.url, 2, ())
        self.assertEqual(third["Referer"], "")
        self.assertNotIn("Origin", third)

    def test_first_matching_rule_wins(self):
        rules = (
            RefererRule("*.cdn.example.com", "https://blog.example.com/post/1"),
            RefererRule("*.example.com", "https://www.example.com/"),
        )
        headers = headers_for("https://a.cdn.example.com/x.jpg", 0, rules)
        self.assertEqual(headers["Referer"], "https://blog.example.com/post/1")
        self.assertEqual(headers["Origin"], "https://blog.example.com")

    def test_unparsable_rule_referer_falls_back_to_request_origin(self):
        rules = (RefererRule("img.example.com", "not-a-url"),)
        headers = headers_for("https://img.example.com/x.jpg", 0, rules)
        self.assertEqual(headers["Referer"], "not-a-url")
        self.assertEqual(headers["Origin"], "https://img.example.com")

    def test_builtin_fallback_host(self):
        headers = headers_for("https://bucket.oss-cn.aliyuncs.com/a.png", 0, ())
        self.assertEqual(headers["Referer"], "https://www.52audio.com/")
        self.assertEqual(headers["Origin"], "https://www.52audio.com")

    def test_configured_rule_overrides_fallback(self):
        rules = (RefererRule("*.aliyuncs.com", "https://mine.example/"),)
        headers = headers_for("https://bucket.aliyuncs.com/a.png", 0, rules)
        self.assertEqual(headers["Referer"], "https://mine.example/")

    def test_rule_referer_replaced_on_later_attempts(self):
        rules = (RefererRule("img.example.com", "https://www.example.com/"),)
        url = "https://img.example.com/x.jpg"
        self.assertEqual(headers_for(url, 1, rules)["Referer"], url)
        self.assertNotIn("Origin", headers_for(url, 1, rules))
        self.assertEqual(headers_for(url, 2, rules)["Referer"], "")

    def test_attempts_past_budget_repeat_first_policy(self):
        rules = (RefererRule("img.example.com", "https://www.example.com/"),)
        url = "https://img.example.com/x.jpg"
        self.assertEqual(headers_for(url, 3, rules), headers_for(url, 0, rules))

    def test_bad_url_yields_minimal_headers(self):
        self.assertEqual(headers_for("::::", 0, ()), MINIMAL_HEADERS)
        self.assertEqual(headers_for("http://[broken/x.png", 0, ()), MINIMAL_HEADERS)


if __name__ == "__main__":
    unittest.main()
