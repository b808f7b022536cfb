from core.services.domain_matcher import compile_pattern, extract_hostname, matches


def test_wildcard_subdomain():
    assert matches("a.b.com", ["*.b.com"])
    assert matches("https://a.b.com/path?q=1", ["*.b.com"])


def test_empty_patterns_match_everything():
    assert matches("x.com", [])
    assert matches("not a url", [])


def test_matching_ignores_case():
    assert matches("EXAMPLE.com", ["example.*"])
    assert matches("https://api.example.com", ["API.EXAMPLE.COM"])


def test_match_is_anchored():
    assert not matches("https://b.com", ["*.b.com"])
    assert not matches("https://evil-b.com.attacker.net", ["b.com"])


def test_dots_are_literal():
    assert not matches("https://axcom", ["a.com"])


def test_only_hostname_is_matched():
    assert matches("https://api.x.com:8443/v1/users", ["api.x.com"])
    assert not matches("https://other.com/api.x.com", ["api.x.com"])


def test_url_without_host_matches_nothing():
    assert not matches("", ["*"])
    assert extract_hostname("") is None


def test_compiled_pattern_is_reused():
    assert compile_pattern("*.x.com") is compile_pattern("*.x.com")
