"""Tests for the trigger strategy engine."""

from dependent_trigger.models import PackageDescriptor, ReleaseLineEntry
from dependent_trigger.strategy import decide, latest_prior_version


def _dependent(range_):
    return PackageDescriptor(name="email", version="2.0.0", dependencies={"cows": range_})


def test_promotion_with_release_line_replays_release():
    root = PackageDescriptor(name="cows", version="2.0.0")
    line = ReleaseLineEntry(pkg="cows", version="2.0.0", dependents={"email": "2.0.1-0"})

    for env in ("test", "prod"):
        decision = decide(env, root, _dependent("^1.0.0"), line)
        assert decision.strategy == "release"
        assert decision.trigger is True


def test_without_release_line_is_legacy():
    root = PackageDescriptor(name="cows", version="2.0.0")

    decision = decide("dev", root, _dependent("*"), None)

    assert decision.strategy == "legacy"
    assert decision.trigger is True
    assert decide("prod", root, _dependent("*"), None).strategy == "legacy"


def test_latest_range_is_inclusive():
    root = PackageDescriptor(name="what", version="6.0.1")
    dependent = PackageDescriptor(name="huh", version="1.0.0", dependencies={"what": "latest"})
    line = ReleaseLineEntry(pkg="what", version="6.0.1")

    decision = decide("dev", root, dependent, line)

    assert decision.strategy == "current"
    assert decision.trigger is True
    assert decision.fetch_release_version is None


def test_new_major_outside_range_is_not_triggered():
    root = PackageDescriptor(name="cows", version="3.0.0")
    line = ReleaseLineEntry(pkg="cows", version="2.0.0")

    decision = decide("dev", root, _dependent("^2.0.0"), line, ["2.0.0", "3.0.0"])

    assert decision.trigger is False
    assert decision.strategy == "current"


def test_previous_major_uses_previous_strategy():
    root = PackageDescriptor(name="cows", version="1.5.0")
    line = ReleaseLineEntry(pkg="cows", version="2.0.0")

    decision = decide("dev", root, _dependent("^2.0.0"), line, ["1.4.0", "1.5.0", "2.0.0"])

    assert decision.trigger is True
    assert decision.strategy == "previous"


def test_known_major_returns_release_version_to_fetch():
    root = PackageDescriptor(name="cows", version="3.1.0")
    line = ReleaseLineEntry(pkg="cows", version="3.0.0")

    decision = decide("dev", root, _dependent("^2.0.0"), line, ["2.0.0", "3.0.0", "3.1.0"])

    assert decision.trigger is True
    assert decision.strategy == "current"
    assert decision.fetch_release_version == "3.0.0"


def test_missing_range_is_not_inclusive():
    root = PackageDescriptor(name="cows", version="3.0.0")
    dependent = PackageDescriptor(name="email", version="2.0.0", dependencies={})
    line = ReleaseLineEntry(pkg="cows", version="2.0.0")

    assert decide("dev", root, dependent, line, ["2.0.0", "3.0.0"]).trigger is False


def test_decide_is_deterministic():
    root = PackageDescriptor(name="cows", version="2.1.0")
    line = ReleaseLineEntry(pkg="cows", version="2.0.0")
    published = ["2.0.0", "2.1.0"]

    results = {decide("dev", root, _dependent("^2.0.0"), line, published) for _ in range(5)}

    assert len(results) == 1


def test_latest_prior_version_skips_current():
    assert latest_prior_version(["1.0.0", "2.0.0", "1.5.0"], "2.0.0") == "1.5.0"
    assert latest_prior_version(["2.0.0"], "2.0.0") == "0.0.0"
    assert latest_prior_version([], "2.0.0") == "0.0.0"
