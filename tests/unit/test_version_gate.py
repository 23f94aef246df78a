"""
Unit tests for semantic version parsing and the publish gate.
"""

import pytest

from release_gate.errors import ConfigurationError
from release_gate.version_gate import PublishDecision, Version, VersionGate


# ============================================================================
# TEST: VERSION PARSING
# ============================================================================

class TestVersionParse:

    def test_parse_triple(self):
        version = Version.parse("1.3.2")
        assert (version.major, version.minor, version.patch) == (1, 3, 2)
        assert version.prerelease == ()

    def test_parse_prerelease_and_build(self):
        version = Version.parse("2.0.0-rc.1+build.5")
        assert version.prerelease == ("rc", "1")
        assert version.build == "build.5"
        assert str(version) == "2.0.0-rc.1+build.5"

    def test_surrounding_whitespace_ignored(self):
        assert Version.parse(" 0.4.0\n") == Version(0, 4, 0)

    @pytest.mark.parametrize("text", ["", "1.2", "1.2.3.4", "v1.2.3", "01.2.3", "1.2.x", "latest"])
    def test_malformed_is_configuration_error(self, text):
        with pytest.raises(ConfigurationError):
            Version.parse(text)

    def test_non_string_rejected(self):
        with pytest.raises(ConfigurationError):
            Version.parse(123)


# ============================================================================
# TEST: ORDERING
# ============================================================================

class TestVersionOrdering:

    def test_numeric_not_lexical(self):
        assert Version.parse("1.10.0") > Version.parse("1.9.0")
        assert Version.parse("1.2.10") > Version.parse("1.2.9")
        assert Version.parse("10.0.0") > Version.parse("9.99.99")

    def test_components_compared_left_to_right(self):
        assert Version.parse("2.0.0") > Version.parse("1.9.5")
        assert Version.parse("1.2.0") > Version.parse("1.1.9")

    def test_prerelease_sorts_before_release(self):
        assert Version.parse("1.0.0-alpha") < Version.parse("1.0.0")
        assert Version.parse("1.0.0-alpha") < Version.parse("1.0.0-alpha.1")
        assert Version.parse("1.0.0-alpha.1") < Version.parse("1.0.0-alpha.beta")
        assert Version.parse("1.0.0-beta.2") < Version.parse("1.0.0-beta.11")
        assert Version.parse("1.0.0-rc.1") < Version.parse("1.0.0")

    def test_build_metadata_ignored(self):
        assert Version.parse("1.0.0+a") == Version.parse("1.0.0+b")
        assert hash(Version.parse("1.0.0+a")) == hash(Version.parse("1.0.0"))

    def test_sorting(self):
        versions = [Version.parse(v) for v in ["1.10.0", "1.2.0", "1.9.0", "0.9.9"]]
        assert [str(v) for v in sorted(versions)] == ["0.9.9", "1.2.0", "1.9.0", "1.10.0"]


# ============================================================================
# TEST: GATE
# ============================================================================

class TestVersionGate:

    @pytest.fixture
    def gate(self):
        return VersionGate()

    @pytest.mark.parametrize("source,registry", [
        ("2.0.0", "1.9.5"),
        ("1.10.0", "1.9.0"),
        ("0.1.1", "0.1.0"),
        ("1.0.0", "1.0.0-rc.1"),
    ])
    def test_higher_source_opens_gate(self, gate, source, registry):
        decision = gate.decide(Version.parse(source), Version.parse(registry))
        assert isinstance(decision, PublishDecision)
        assert decision.publish
        assert str(decision.source_version) == source
        assert str(decision.registry_version) == registry

    @pytest.mark.parametrize("source,registry", [
        ("1.2.0", "1.2.0"),
        ("1.1.0", "1.2.0"),
        ("1.9.0", "1.10.0"),
        ("1.0.0-rc.1", "1.0.0"),
    ])
    def test_equal_or_lower_source_keeps_gate_closed(self, gate, source, registry):
        decision = gate.decide(Version.parse(source), Version.parse(registry))
        assert not decision.publish
        assert "not higher" in decision.reason

    @pytest.mark.parametrize("source", ["0.0.1", "1.0.0", "99.0.0-alpha"])
    def test_absent_registry_version_always_opens(self, gate, source):
        decision = gate.decide(Version.parse(source), None)
        assert decision.publish
        assert decision.registry_version is None

    def test_accepts_strings(self, gate):
        assert gate.decide("1.0.1", "1.0.0").publish

    def test_unparseable_source_raises(self, gate):
        with pytest.raises(ConfigurationError):
            gate.decide("not-a-version", "1.0.0")

    def test_build_metadata_only_difference_does_not_publish(self, gate):
        assert not gate.decide("1.0.0+ci.2", "1.0.0+ci.1").publish
