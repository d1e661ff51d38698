from pathlib import Path

from error_handling import (
    AnalysisFailure,
    CardinalityError,
    DataInsufficiencyError,
    ErrorManager,
)


def test_failure_from_error_keeps_kind_and_details() -> None:
    error = DataInsufficiencyError("Too few rows", details={"complete_rows": 2})
    failure = AnalysisFailure.from_error(error)

    assert failure.kind == "data_insufficiency"
    assert failure.message == "Too few rows"
    assert failure.details == {"complete_rows": 2}
    assert not failure.ok


def test_error_manager_records_guidance(tmp_path: Path) -> None:
    log_path = tmp_path / "analysis.log"
    log_path.write_text("log")

    manager = ErrorManager()
    manager.set_log_path(log_path)
    record = manager.register_failure(
        AnalysisFailure.from_error(CardinalityError("Three groups", details={"groups": 3}))
    )

    assert record.title == "Unsupported grouping"
    assert "two" in record.guidance.lower()
    assert str(log_path) in record.guidance
    assert "Guidance" in record.formatted_message
    assert "groups=3" in record.formatted_message


def test_unknown_kind_gets_generic_guidance() -> None:
    manager = ErrorManager()
    record = manager.register_failure(
        AnalysisFailure(kind="no_result", message="Run an analysis first."),
        hints=["Load a table."],
    )

    assert record.title == "Analysis failed"
    assert record.guidance.startswith("Load a table.")


def test_error_history_clear() -> None:
    manager = ErrorManager(max_entries=2)
    manager.register_failure(AnalysisFailure(kind="a", message="First"))
    manager.register_failure(AnalysisFailure(kind="b", message="Second"))
    assert len(manager.get_recent()) == 2

    manager.clear()
    assert manager.get_recent() == []


def test_error_history_trims() -> None:
    manager = ErrorManager(max_entries=2)
    for message in ("First", "Second", "Third"):
        manager.register_failure(AnalysisFailure(kind="x", message=message))

    recent = manager.get_recent()
    assert [record.message for record in recent] == ["Second", "Third"]
