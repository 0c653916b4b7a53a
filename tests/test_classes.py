"""Tests for class submission, moderation, the public catalog and assignments."""
from unittest.mock import Mock

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

TEACHER = "teacher@skillhorizon.io"


@pytest.fixture
def class_id(client, teacher_headers):
    resp = client.post(
        "/classes",
        json={"title": "Intro to Python", "price": 20.0, "image": "https://img/python.png", "description": "Basics"},
        headers=teacher_headers,
    )
    assert resp.status_code == 200
    return resp.json()["inserted_id"]


def test_new_class_is_pending_and_owned(store, class_id):
    doc = store.classes.find_one({"_id": ObjectId(class_id)})
    assert doc["status"] == "Pending"
    assert doc["email"] == TEACHER


def test_create_class_requires_title_and_price(client, teacher_headers):
    assert client.post("/classes", json={"title": "No price"}, headers=teacher_headers).status_code == 400
    assert client.post("/classes", json={"title": "Negative", "price": -1}, headers=teacher_headers).status_code == 400


def test_teacher_lists_own_classes(client, teacher_headers, class_id):
    resp = client.get(f"/classes/{TEACHER}", headers=teacher_headers)
    assert [c["id"] for c in resp.json()] == [class_id]


def test_teacher_cannot_list_another_teachers_classes(client, make_user, teacher_headers):
    make_user("other@skillhorizon.io", role="Teacher")
    assert client.get("/classes/other@skillhorizon.io", headers=teacher_headers).status_code == 403


def test_update_own_class(client, store, teacher_headers, class_id):
    resp = client.patch(f"/classes/{class_id}", json={"price": 25.5}, headers=teacher_headers)
    assert resp.status_code == 200
    assert store.classes.find_one({"_id": ObjectId(class_id)})["price"] == 25.5


def test_update_with_empty_body(client, teacher_headers, class_id):
    assert client.patch(f"/classes/{class_id}", json={}, headers=teacher_headers).status_code == 400


def test_update_someone_elses_class(client, make_user, class_id):
    other = make_user("other@skillhorizon.io", role="Teacher")
    assert client.patch(f"/classes/{class_id}", json={"title": "Mine now"}, headers=other).status_code == 404


def test_delete_own_class(client, store, teacher_headers, class_id):
    resp = client.delete(f"/classes/{class_id}", headers=teacher_headers)
    assert resp.status_code == 200
    assert resp.json()["deleted_count"] == 1
    assert store.classes.count_documents({}) == 0
    assert client.delete(f"/classes/{class_id}", headers=teacher_headers).status_code == 404


class TestModeration:
    def test_approve_class(self, client, store, admin_headers, class_id):
        resp = client.patch(f"/admin/approve-class/{class_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["modified_count"] == 1
        assert store.classes.find_one({"_id": ObjectId(class_id)})["status"] == "Accepted"

    def test_reject_class(self, client, store, admin_headers, class_id):
        client.patch(f"/admin/reject-class/{class_id}", headers=admin_headers)
        assert store.classes.find_one({"_id": ObjectId(class_id)})["status"] == "Rejected"

    def test_unknown_class_is_noop(self, client, admin_headers):
        resp = client.patch(f"/admin/approve-class/{ObjectId()}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["matched_count"] == 0

    def test_malformed_id(self, client, admin_headers):
        assert client.patch("/admin/approve-class/xyz", headers=admin_headers).status_code == 400

    def test_store_failure(self, client, store, admin_headers, class_id):
        store.classes = Mock(wraps=store.classes)
        store.classes.update_one.side_effect = PyMongoError("timeout")
        resp = client.patch(f"/admin/reject-class/{class_id}", headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Failed to update class status"}

    def test_requires_admin(self, client, teacher_headers, class_id):
        assert client.patch(f"/admin/approve-class/{class_id}").status_code == 401
        assert client.patch(f"/admin/approve-class/{class_id}", headers=teacher_headers).status_code == 403

    def test_admin_lists_all_classes(self, client, admin_headers, class_id):
        resp = client.get("/classes", headers=admin_headers)
        assert [c["id"] for c in resp.json()] == [class_id]


class TestCatalog:
    def test_only_accepted_classes_are_listed(self, client, store):
        store.classes.insert_many(
            [
                {"title": "Accepted", "status": "Accepted"},
                {"title": "Pending", "status": "Pending"},
                {"title": "Rejected", "status": "Rejected"},
                {"title": "Lowercase", "status": "accepted"},
            ]
        )
        resp = client.get("/all-classes")
        assert resp.status_code == 200
        assert [c["title"] for c in resp.json()] == ["Accepted"]

    def test_class_details(self, client, admin_headers, class_id):
        assert client.get(f"/all-classes/{class_id}").status_code == 404
        client.patch(f"/admin/approve-class/{class_id}", headers=admin_headers)
        resp = client.get(f"/all-classes/{class_id}")
        assert resp.status_code == 200
        assert resp.json()["title"] == "Intro to Python"


class TestAssignments:
    def test_create_and_list(self, client, teacher_headers, class_id):
        resp = client.post(
            "/assignments",
            json={"class_id": class_id, "title": "Week 1", "deadline": "2026-11-01T12:00:00Z"},
            headers=teacher_headers,
        )
        assert resp.status_code == 200
        listed = client.get(f"/assignments/{TEACHER}/{class_id}", headers=teacher_headers).json()
        assert [a["title"] for a in listed] == ["Week 1"]
        assert listed[0]["deadline"].startswith("2026-11-01T12:00:00")

    def test_listing_is_scoped_to_class(self, client, store, teacher_headers, class_id):
        store.assignments.insert_one({"email": TEACHER, "class_id": str(ObjectId()), "title": "Elsewhere"})
        assert client.get(f"/assignments/{TEACHER}/{class_id}", headers=teacher_headers).json() == []

    def test_cannot_add_to_unowned_class(self, client, make_user, class_id):
        other = make_user("other@skillhorizon.io", role="Teacher")
        resp = client.post("/assignments", json={"class_id": class_id, "title": "Hijack"}, headers=other)
        assert resp.status_code == 404

    def test_students_cannot_create(self, client, student_headers, class_id):
        resp = client.post("/assignments", json={"class_id": class_id, "title": "Nope"}, headers=student_headers)
        assert resp.status_code == 403
