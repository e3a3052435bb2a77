import datetime as dt

from roadmap_progression.annotations import (
    add_annotation,
    clear_dangling,
    dangling,
    delete_annotation,
    dismiss_reminder,
    due_reminders,
    for_project,
    for_step,
    group_by_date,
    link_to_project,
    link_to_step,
    new_annotation,
    pending_reminders,
    resolve_step,
    schedule,
    scheduled,
    unlinked,
    unschedule,
    update_text,
)
from roadmap_progression.progression import remove_step
from roadmap_progression.roadmap_models import Annotation, Phase, Roadmap, Step

NOW = dt.datetime(2024, 5, 1, 9, 0, tzinfo=dt.timezone.utc)


def _note(note_id, **kwargs):
    return Annotation(id=note_id, text=note_id, created_at=NOW, **kwargs)


def _roadmap():
    return Roadmap(phases=(Phase(id="p", name="P", steps=(Step(id="a", text="A"), Step(id="b", text="B"))),))


def test_new_annotation_defaults():
    note = new_annotation("Call the printer", step_id="a", now=NOW)

    assert note.created_at == NOW
    assert note.step_id == "a"
    assert not note.is_scheduled
    assert not note.reminder_dismissed


def test_crud_round():
    notes = add_annotation((), _note("n1"))
    notes = add_annotation(notes, _note("n2"))

    notes = update_text(notes, "n1", "edited")
    assert notes[0].text == "edited"

    notes = delete_annotation(notes, "n2")
    assert [n.id for n in notes] == ["n1"]
    assert update_text(notes, "missing", "x") == notes


def test_linking_and_lookup():
    notes = (_note("n1"), _note("n2"), _note("n3", project_id="proj"))

    notes = link_to_step(notes, "n1", "a")
    notes = link_to_project(notes, "n2", "proj")

    assert [n.id for n in for_step(notes, "a")] == ["n1"]
    assert [n.id for n in for_project(notes, "proj")] == ["n2", "n3"]
    assert [n.id for n in unlinked(notes)] == ["n1"]

    notes = link_to_step(notes, "n1", None)
    assert for_step(notes, "a") == []


def test_resolve_step_is_a_lookup():
    roadmap = _roadmap()

    assert resolve_step(roadmap, "b").text == "B"
    assert resolve_step(roadmap, "gone") is None
    assert resolve_step(roadmap, None) is None


def test_removing_a_step_leaves_link_until_cleared():
    roadmap = remove_step(_roadmap(), "a")
    notes = (_note("n1", step_id="a"), _note("n2", step_id="b"), _note("n3"))

    assert [n.id for n in dangling(notes, roadmap)] == ["n1"]
    assert notes[0].step_id == "a"

    cleaned = clear_dangling(notes, roadmap)
    assert [n.step_id for n in cleaned] == [None, "b", None]
    assert dangling(cleaned, roadmap) == []


def test_scheduling_and_reminders():
    notes = (_note("late"), _note("soon"), _note("plain"))
    notes = schedule(notes, "late", NOW - dt.timedelta(hours=2))
    notes = schedule(notes, "soon", NOW - dt.timedelta(seconds=20))

    assert [n.id for n in scheduled(notes)] == ["late", "soon"]
    assert [n.id for n in pending_reminders(notes, NOW)] == ["late", "soon"]
    assert [n.id for n in due_reminders(notes, NOW)] == ["soon"]

    notes = dismiss_reminder(notes, "soon")
    assert [n.id for n in pending_reminders(notes, NOW)] == ["late"]
    assert due_reminders(notes, NOW) == []

    notes = schedule(notes, "soon", NOW + dt.timedelta(minutes=5))
    assert not notes[1].reminder_dismissed
    assert [n.id for n in pending_reminders(notes, NOW + dt.timedelta(minutes=5))] == ["late", "soon"]

    notes = unschedule(notes, "late")
    assert [n.id for n in scheduled(notes)] == ["soon"]


def test_naive_and_aware_times_mix():
    naive = new_annotation("naive", scheduled_at=dt.datetime(2024, 5, 1, 8, 59, 30), now=dt.datetime(2024, 5, 1))
    aware = new_annotation("aware", scheduled_at=NOW - dt.timedelta(hours=1), now=NOW)

    assert naive.scheduled_at.tzinfo is not None
    assert naive.created_at.tzinfo is not None
    assert [n.text for n in scheduled([naive, aware])] == ["aware", "naive"]
    assert [n.text for n in pending_reminders([naive, aware], NOW)] == ["aware", "naive"]
    assert [n.text for n in due_reminders([naive, aware], NOW.replace(tzinfo=None))] == ["naive"]

    notes = schedule((_note("n1"), aware), "n1", dt.datetime(2024, 5, 1, 7, 0))
    assert notes[0].scheduled_at == dt.datetime(2024, 5, 1, 7, 0, tzinfo=dt.timezone.utc)
    assert [n.id for n in scheduled(notes)] == ["n1", aware.id]


def test_group_by_date_buckets_scheduled_notes_by_day():
    notes = (
        _note("evening", scheduled_at=NOW.replace(hour=22)),
        _note("plain"),
        _note("tomorrow", scheduled_at=NOW + dt.timedelta(days=1)),
        _note("morning", scheduled_at=NOW.replace(hour=7)),
    )

    groups = group_by_date(notes)

    assert [day for day, _ in groups] == [dt.date(2024, 5, 1), dt.date(2024, 5, 2)]
    assert [n.id for n in groups[0][1]] == ["morning", "evening"]
    assert [n.id for n in groups[1][1]] == ["tomorrow"]

    shifted = group_by_date(notes, tz=dt.timezone(dt.timedelta(hours=3)))
    assert [[n.id for n in day_notes] for _, day_notes in shifted] == [["morning"], ["evening", "tomorrow"]]
    assert group_by_date(()) == []
