import pytest

from conftest import as_auth_user, auth_headers
from entrance_pathway.auth_utils import AuthUser
from entrance_pathway.errors import InvalidInputError, NotFoundError, UnauthorizedError
from entrance_pathway.services import notes as note_service


def _note_fields(subject_id, **overrides):
    fields = {
        "title": "Kinematics formula sheet",
        "file_url": "https://files.example.com/kinematics.pdf",
        "file_name": "kinematics.pdf",
        "file_size": 4096,
        "file_type": "application/pdf",
        "note_type": "formula_sheet",
        "subject_id": subject_id,
    }
    fields.update(overrides)
    return fields


def test_create_note_is_unpublished_and_owned(session, mentor_user, subject):
    note = note_service.create_note(session, as_auth_user(mentor_user), **_note_fields(subject.id))
    assert note.is_published is False
    assert note.uploaded_by == mentor_user.id
    assert note.download_count == 0


def test_note_validation(session, mentor_user, subject, topic):
    other_subject_topic_note = _note_fields(subject.id + 100, note_type="poster", file_size=-1, topic_id=topic.id)
    with pytest.raises(InvalidInputError) as exc_info:
        note_service.create_note(session, as_auth_user(mentor_user), **other_subject_topic_note)
    assert {"subjectId", "noteType", "fileSize", "topicId"} <= set(exc_info.value.errors)


def test_only_uploader_or_admin_can_update(session, mentor_user, admin_user, subject):
    note = note_service.create_note(session, as_auth_user(mentor_user), **_note_fields(subject.id))
    outsider = AuthUser(id="mentor-2", email="m2@example.com", role="mentor")

    with pytest.raises(UnauthorizedError):
        note_service.update_note(session, outsider, note.id, title="Mine now")

    updated = note_service.update_note(session, as_auth_user(admin_user), note.id, title="Updated title", year=2024)
    assert updated.title == "Updated title"
    assert updated.year == 2024


def test_notes_by_subject_lists_published_only(session, mentor_user, subject):
    mentor = as_auth_user(mentor_user)
    draft = note_service.create_note(session, mentor, **_note_fields(subject.id, title="Draft"))
    published = note_service.create_note(session, mentor, **_note_fields(subject.id, title="Published"))
    note_service.publish_note(session, mentor, published.id)

    assert [n.id for n in note_service.notes_by_subject(session, subject.id)] == [published.id]
    assert draft.id in [n.id for n in note_service.list_notes(session, subject_id=subject.id)]


def test_download_counter(session, mentor_user, subject):
    mentor = as_auth_user(mentor_user)
    note = note_service.create_note(session, mentor, **_note_fields(subject.id))

    with pytest.raises(NotFoundError):
        note_service.increment_download(session, note.id)

    note_service.publish_note(session, mentor, note.id)
    note_service.increment_download(session, note.id)
    counted = note_service.increment_download(session, note.id)
    assert counted.download_count == 2


def test_note_routes(client, mentor_user, admin_user, student_user, subject):
    resp = client.post(
        "/notes",
        json={
            "title": "Past paper 2023",
            "fileUrl": "https://files.example.com/2023.pdf",
            "fileName": "2023.pdf",
            "fileSize": 10240,
            "fileType": "application/pdf",
            "noteType": "question_paper",
            "subjectId": subject.id,
            "year": 2023,
        },
        headers=auth_headers(mentor_user),
    )
    assert resp.status_code == 201
    note_id = resp.json()["id"]

    assert client.get(f"/notes/{note_id}", headers=auth_headers(student_user)).status_code == 404

    client.post(f"/notes/{note_id}/publish", headers=auth_headers(mentor_user))
    resp = client.get("/notes", params={"noteType": "question_paper"})
    assert [n["id"] for n in resp.json()] == [note_id]

    resp = client.post(f"/notes/{note_id}/download")
    assert resp.json()["downloadCount"] == 1

    assert client.delete(f"/notes/{note_id}", headers=auth_headers(mentor_user)).status_code == 403
    assert client.delete(f"/notes/{note_id}", headers=auth_headers(admin_user)).status_code == 200
    assert client.get(f"/subjects/{subject.id}/notes").json() == []
