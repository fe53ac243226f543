"""Tests for the staleness check over a package set."""

import pytest

from crate_staleness.analyzer import (
    StalenessAnalyzer,
    check_package,
    check_packages,
    find_outdated,
    version_direction,
)
from crate_staleness.config import CheckerConfig
from crate_staleness.exceptions import InvalidInputError
from crate_staleness import analyzer as analyzer_mod
from crate_staleness.manifests import TomlManifestIntrospector
from crate_staleness.models import ManifestRef
from crate_staleness.resolvers import ResolverCache

from fakes import FakeIntrospector, FakeRegistry, FakeResponse, FakeSession


def test_find_outdated_reports_version_mismatch(manifests):
    _, downstream = manifests
    registry = FakeRegistry({"zcash-primitives": "0.2.0"})
    introspector = FakeIntrospector(versions={"zcash-primitives": "0.1.0"})

    assert find_outdated({"zcash-primitives"}, downstream, registry, introspector) == ["zcash-primitives"]


def test_find_outdated_ignores_up_to_date_package(manifests):
    _, downstream = manifests
    registry = FakeRegistry({"zcash-primitives": "0.1.0"})
    introspector = FakeIntrospector(versions={"zcash-primitives": "0.1.0"})

    assert find_outdated({"zcash-primitives"}, downstream, registry, introspector) == []


def test_find_outdated_skips_unknown_registry_package(manifests):
    _, downstream = manifests
    registry = FakeRegistry({"zcash-primitives": "0.2.0"})
    introspector = FakeIntrospector(versions={"foo": "1.0.0", "zcash-primitives": "0.1.0"})

    outdated = find_outdated({"foo", "zcash-primitives"}, downstream, registry, introspector)

    assert outdated == ["zcash-primitives"]
    # Absent registry data short-circuits the manifest lookup.
    assert "foo" not in introspector.version_calls


def test_find_outdated_skips_package_missing_from_manifest(manifests):
    _, downstream = manifests
    registry = FakeRegistry({"orchard": "0.5.0", "zcash_address": "0.3.0"})
    introspector = FakeIntrospector(versions={"orchard": "0.4.0", "zcash_address": ""})

    outdated = find_outdated(["orchard", "zcash_address"], downstream, registry, introspector)

    assert outdated == ["orchard"]


def test_find_outdated_flags_manifest_ahead_of_registry(manifests):
    _, downstream = manifests
    registry = FakeRegistry({"zcash_client_backend": "0.9.0"})
    introspector = FakeIntrospector(versions={"zcash_client_backend": "0.10.0-rc.1"})

    assert find_outdated(
        ["zcash_client_backend"], downstream, registry, introspector
    ) == ["zcash_client_backend"]


def test_find_outdated_is_sorted_and_idempotent(manifests):
    _, downstream = manifests
    latest = {"zcash_proofs": "0.12.0", "orchard": "0.5.0", "zcash_address": "0.3.0", "sapling": "0.1.0"}
    current = {"zcash_proofs": "0.11.0", "orchard": "0.4.0", "zcash_address": "0.3.0", "sapling": "0.0.9"}
    packages = {"zcash_proofs", "orchard", "zcash_address", "sapling"}

    first = find_outdated(packages, downstream, FakeRegistry(latest), FakeIntrospector(versions=current))
    second = find_outdated(packages, downstream, FakeRegistry(latest), FakeIntrospector(versions=current))

    assert first == ["orchard", "sapling", "zcash_proofs"]
    assert first == second


def test_find_outdated_sequential_matches_concurrent(manifests):
    _, downstream = manifests
    latest = {f"crate{i}": f"1.{i}.0" for i in range(12)}
    current = {f"crate{i}": ("1.0.0" if i % 3 else f"1.{i}.0") for i in range(12)}

    sequential = find_outdated(
        latest, downstream, FakeRegistry(latest), FakeIntrospector(versions=current),
        config=CheckerConfig(max_workers=1),
    )
    concurrent = find_outdated(
        latest, downstream, FakeRegistry(latest), FakeIntrospector(versions=current),
        config=CheckerConfig(max_workers=8),
    )

    assert sequential == concurrent
    assert sequential == sorted(f"crate{i}" for i in range(12) if i % 3)


def test_find_outdated_survives_failing_lookup(manifests):
    _, downstream = manifests

    class ExplodingRegistry(FakeRegistry):
        def latest_stable_version(self, package_name):
            if package_name == "broken":
                raise RuntimeError("connection reset")
            return super().latest_stable_version(package_name)

    registry = ExplodingRegistry({"orchard": "0.5.0"})
    introspector = FakeIntrospector(versions={"orchard": "0.4.0", "broken": "1.0.0"})

    assert find_outdated(["broken", "orchard"], downstream, registry, introspector) == ["orchard"]


def test_find_outdated_empty_set_is_valid(manifests):
    _, downstream = manifests
    registry = FakeRegistry({})

    assert find_outdated(set(), downstream, registry, FakeIntrospector()) == []
    assert registry.calls == []


def test_find_outdated_ignores_blank_names(manifests):
    _, downstream = manifests
    registry = FakeRegistry({"orchard": "0.5.0"})

    find_outdated(["", "  ", "orchard"], downstream, registry, FakeIntrospector(versions={"orchard": "0.5.0"}))

    assert registry.calls == ["orchard"]


@pytest.mark.parametrize("locator", ["", None])
def test_find_outdated_rejects_empty_manifest(locator):
    with pytest.raises(InvalidInputError):
        find_outdated({"orchard"}, locator, FakeRegistry({}), FakeIntrospector())


def test_check_package_record_fields(manifests):
    _, downstream = manifests
    record = check_package(
        "orchard",
        ManifestRef.from_locator(downstream),
        FakeRegistry({"orchard": "0.5.0"}),
        FakeIntrospector(versions={"orchard": "0.4.0"}),
    )

    assert record.name == "orchard"
    assert record.latest == "0.5.0"
    assert record.current == "0.4.0"
    assert record.outdated is True
    assert record.direction == "behind"


def test_check_packages_keeps_skipped_records(manifests):
    _, downstream = manifests
    records = check_packages(
        ["foo", "orchard"],
        downstream,
        FakeRegistry({"orchard": "0.5.0"}),
        FakeIntrospector(versions={"orchard": "0.5.0"}),
    )

    assert [r.name for r in records] == ["foo", "orchard"]
    assert records[0].latest is None and records[0].outdated is False
    assert records[1].direction == "current"


@pytest.mark.parametrize(
    "current, latest, expected",
    [
        ("0.1.0", "0.2.0", "behind"),
        ("0.3.0", "0.2.0", "ahead"),
        ("0.2.0", "0.2.0", "current"),
        ("0.2.0, 0.3.0", "0.3.0", "differs"),
        (None, "0.2.0", "unknown"),
        ("0.2.0", "", "unknown"),
    ],
)
def test_version_direction(current, latest, expected):
    assert version_direction(current, latest) == expected


def test_staleness_analyzer_runs_both_stages(manifests):
    upstream, downstream = manifests
    introspector = FakeIntrospector(
        produced={upstream: ["zcash-primitives", "zcash-proofs"]},
        dependencies={downstream: ["zcash-primitives", "zcash-proofs", "serde"]},
        versions={"zcash-primitives": "0.1.0", "zcash-proofs": "0.1.0"},
    )
    registry = FakeRegistry({"zcash-primitives": "0.2.0"})

    with StalenessAnalyzer(upstream, downstream, registry=registry, introspector=introspector) as analyzer:
        report = analyzer.analyze()

    assert report.packages == {"zcash-primitives", "zcash-proofs"}
    assert report.outdated == ["zcash-primitives"]
    assert report.skipped == ["zcash-proofs"]
    assert "serde" not in registry.calls


def test_staleness_analyzer_rejects_empty_upstream(manifests):
    _, downstream = manifests

    with pytest.raises(InvalidInputError):
        StalenessAnalyzer("", downstream, registry=FakeRegistry({}), introspector=FakeIntrospector())


def test_staleness_record_compare_treats_empty_as_absent():
    from crate_staleness.models import PackageVersion, StalenessRecord

    record = StalenessRecord.compare(PackageVersion("orchard", "0.5.0"), PackageVersion("orchard", ""))

    assert record.outdated is False
    assert record.current is None


def test_staleness_analyzer_reports_case_variant_dependency(tmp_path, write_file):
    upstream = write_file(
        tmp_path / "librustzcash" / "Cargo.toml",
        '[package]\nname = "zcash_primitives"\nversion = "0.13.0"\n',
    )
    downstream = write_file(
        tmp_path / "uniffi-zcash" / "Cargo.toml",
        '[package]\nname = "uniffi-zcash"\nversion = "0.0.0"\n\n'
        '[dependencies]\nZcash_Primitives = "0.11"\n',
    )
    write_file(
        tmp_path / "uniffi-zcash" / "Cargo.lock",
        'version = 3\n\n[[package]]\nname = "zcash_primitives"\nversion = "0.11.0"\n',
    )
    registry = FakeRegistry({"zcash_primitives": "0.13.0"})

    report = StalenessAnalyzer(
        upstream, downstream, registry=registry, introspector=TomlManifestIntrospector()
    ).analyze()

    assert report.packages == {"zcash_primitives"}
    assert report.outdated == ["zcash_primitives"]
    assert report.skipped == []


def test_find_outdated_closes_default_registry_session(manifests, monkeypatch):
    _, downstream = manifests
    session = FakeSession({
        "https://crates.io/api/v1/crates/orchard": FakeResponse({"crate": {"max_stable_version": "0.5.0"}})
    })
    monkeypatch.setattr(analyzer_mod, "ResolverCache", lambda: ResolverCache(session=session))

    outdated = find_outdated(["orchard"], downstream, introspector=FakeIntrospector(versions={"orchard": "0.4.0"}))

    assert outdated == ["orchard"]
    assert session.closed is True
