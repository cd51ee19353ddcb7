from hypothesis import given
from hypothesis import strategies as st

from git_autosync.config import Repository
from git_autosync.constants import DEFAULT_STATUS_MARKERS
from git_autosync.sync import CycleReport, Step, SyncOutcome, needs_commit

# Strategy: arbitrary status text that cannot contain any of the default markers
# (no upper-case letters, and every marker starts with one).
clean_text = st.text(alphabet=st.characters(exclude_categories=("Lu",)))


@given(text=clean_text)
def test_text_without_markers_needs_no_commit(text: str) -> None:
    """
    Property: Output that contains none of the markers never triggers a commit.
    """
    assert not needs_commit(text)


@given(
    prefix=st.text(),
    suffix=st.text(),
    marker=st.sampled_from(DEFAULT_STATUS_MARKERS),
)
def test_any_marker_anywhere_needs_commit(
    prefix: str, suffix: str, marker: str
) -> None:
    """
    Property: A marker embedded anywhere in the output triggers a commit.
    """
    assert needs_commit(prefix + marker + suffix)


@given(results=st.lists(st.booleans()))
def test_report_lists_exactly_the_synced_paths_in_order(results: list[bool]) -> None:
    """
    Property: The synced list is the configured order filtered to successes,
    and the summary only claims success when something was pushed.
    """
    outcomes = [
        SyncOutcome(
            Repository(f"/repos/{i}"),
            synced=ok,
            step=Step.PUSH if ok else Step.PULL,
        )
        for i, ok in enumerate(results)
    ]
    report = CycleReport(outcomes)

    expected = [f"/repos/{i}" for i, ok in enumerate(results) if ok]
    assert report.synced == expected
    if expected:
        assert all(path in report.summary() for path in expected)
    else:
        assert report.summary() == "No repository synced"
