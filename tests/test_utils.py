"""Unit tests for configuration helpers in kube_srv_dns.utils.

Tests cover:
- Hostname exclusion patterns (_parse_exclude_patterns, _is_domain_excluded)
- Boolean parsing (_parse_bool)
- YAML config file loading (load_config_file)
"""

import re
from pathlib import Path

from kube_srv_dns.utils import (
    _is_domain_excluded,
    _parse_bool,
    _parse_exclude_patterns,
    load_config_file,
)

# =============================================================================
# Exclude Pattern Parsing Tests
# =============================================================================


def test_parse_exclude_patterns_exact_wildcard_and_regex() -> None:
    """Patterns can be exact, wildcard (fnmatch), or regex (prefix ~)."""
    patterns = _parse_exclude_patterns("auth.example.com,*.internal.*,~^dev-\\d+\\.example\\.com$")
    assert all(isinstance(p, re.Pattern) for p in patterns)

    assert _is_domain_excluded("auth.example.com", patterns)
    assert _is_domain_excluded("svc.internal.example.com", patterns)
    assert _is_domain_excluded("dev-42.example.com", patterns)

    assert not _is_domain_excluded("public.example.com", patterns)


def test_parse_exclude_patterns_accepts_list() -> None:
    """A list of items (from the YAML file) parses like the env var."""
    patterns = _parse_exclude_patterns(["a.example.com", " *.test.* ", ""])
    assert len(patterns) == 2
    assert _is_domain_excluded("a.example.com", patterns)
    assert _is_domain_excluded("foo.test.bar", patterns)


def test_parse_exclude_patterns_empty() -> None:
    assert _parse_exclude_patterns("") == []
    assert _parse_exclude_patterns([]) == []


def test_parse_exclude_patterns_invalid_regex_skipped() -> None:
    """Invalid regex patterns are skipped and the rest still parse."""
    patterns = _parse_exclude_patterns("~[invalid,valid.example.com")
    assert len(patterns) == 1
    assert _is_domain_excluded("valid.example.com", patterns)


def test_is_domain_excluded_case_insensitive() -> None:
    patterns = _parse_exclude_patterns("Svc.Example.COM")
    assert _is_domain_excluded("svc.example.com", patterns)
    assert _is_domain_excluded("SVC.EXAMPLE.COM", patterns)


def test_is_domain_excluded_exact_requires_full_match() -> None:
    patterns = _parse_exclude_patterns("example.com")
    assert _is_domain_excluded("example.com", patterns)
    assert not _is_domain_excluded("svc.example.com", patterns)
    assert not _is_domain_excluded("example.com.other", patterns)


def test_is_domain_excluded_empty_patterns() -> None:
    assert not _is_domain_excluded("anything.example.com", [])


# =============================================================================
# Boolean Parsing Tests
# =============================================================================


def test_parse_bool_true_values() -> None:
    for val in ["true", "TRUE", "1", "yes", "y", "on", " on ", True]:
        assert _parse_bool(val) is True, f"Expected True for {val!r}"


def test_parse_bool_false_values() -> None:
    for val in ["false", "0", "no", "off", "maybe", False]:
        assert _parse_bool(val) is False, f"Expected False for {val!r}"


def test_parse_bool_none_uses_default() -> None:
    assert _parse_bool(None, default=True) is True
    assert _parse_bool(None, default=False) is False


# =============================================================================
# Config File Loading Tests
# =============================================================================


def test_load_config_file_reads_zones_and_exclusions(tmp_path: Path) -> None:
    config_file = tmp_path / "kube-srv-dns.yaml"
    config_file.write_text(
        "zones:\n  - example.com\n  - ' example.org '\nexclude_hostnames:\n  - '*.staging.example.com'\n",
        encoding="utf-8",
    )

    assert load_config_file(str(config_file)) == {
        "zones": ["example.com", "example.org"],
        "exclude_hostnames": ["*.staging.example.com"],
    }


def test_load_config_file_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_config_file(str(tmp_path / "missing.yaml")) == {}
    assert load_config_file("") == {}


def test_load_config_file_malformed_yaml_is_ignored(tmp_path: Path) -> None:
    config_file = tmp_path / "bad.yaml"
    config_file.write_text("zones: [unclosed\n", encoding="utf-8")

    assert load_config_file(str(config_file)) == {}


def test_load_config_file_ignores_non_list_values(tmp_path: Path) -> None:
    config_file = tmp_path / "odd.yaml"
    config_file.write_text("zones: example.com\nexclude_hostnames: []\n", encoding="utf-8")

    assert load_config_file(str(config_file)) == {"exclude_hostnames": []}


def test_load_config_file_non_mapping_is_ignored(tmp_path: Path) -> None:
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- example.com\n", encoding="utf-8")

    assert load_config_file(str(config_file)) == {}
