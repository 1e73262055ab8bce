"""
API tests for subtasks and comments nested under a todo.

Subtask changes and comment edits are published as ``todo-updated`` with the
refreshed parent; a new comment is published as ``comment-added``.
"""

import json

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def parent(todo_factory):
    return todo_factory(title="Plan trip")


def _post(client, url, body, headers):
    return client.post(url, data=json.dumps(body), headers=headers)


def _subtasks_url(todo):
    return f"/api/todos/{todo['id']}/subtasks"


class TestSubtasks:
    @pytest.mark.api
    def test_create_subtask_appends_in_order(self, client, db_session, api_headers, parent):
        # Act
        first = _post(client, _subtasks_url(parent), {"title": "Book flights"}, api_headers)
        second = _post(client, _subtasks_url(parent), {"title": "Book hotel"}, api_headers)

        # Assert
        assert first.status_code == 201
        assert first.get_json()["data"]["subtask"]["order"] == 0
        assert second.get_json()["data"]["subtask"]["order"] == 1
        todo = second.get_json()["data"]["todo"]
        assert [subtask["title"] for subtask in todo["subtasks"]] == ["Book flights", "Book hotel"]
        assert todo["total_subtasks"] == 2
        assert todo["completed_subtasks"] == 0

    @pytest.mark.api
    def test_explicit_order_respected(self, client, db_session, api_headers, parent):
        _post(client, _subtasks_url(parent), {"title": "later", "order": 5}, api_headers)
        response = _post(
            client, _subtasks_url(parent), {"title": "sooner", "order": 1}, api_headers
        )

        titles = [subtask["title"] for subtask in response.get_json()["data"]["todo"]["subtasks"]]
        assert titles == ["sooner", "later"]

    @pytest.mark.api
    def test_create_subtask_without_title_returns_400(self, client, db_session, api_headers, parent):
        response = _post(client, _subtasks_url(parent), {}, api_headers)

        assert response.status_code == 400

    @pytest.mark.api
    def test_subtask_on_other_users_todo_is_404(
        self, client, db_session, other_user_headers, parent
    ):
        response = _post(
            client, _subtasks_url(parent), {"title": "x"}, other_user_headers
        )

        assert response.status_code == 404
        assert response.get_json()["error"] == "Todo not found"

    @pytest.mark.realtime
    def test_completing_subtask_publishes_parent_update(
        self, client, db_session, api_headers, parent, open_session
    ):
        # Arrange
        created = _post(
            client, _subtasks_url(parent), {"title": "Pack"}, api_headers
        ).get_json()["data"]["subtask"]
        sink = open_session("sid-A")

        # Act
        response = client.put(
            f"/api/todos/subtasks/{created['id']}",
            data=json.dumps({"completed": True}),
            headers=api_headers,
        )

        # Assert
        assert response.status_code == 200
        assert response.get_json()["data"]["subtask"]["completed"] is True
        assert sink.names == ["todo-updated"]
        published = sink.payloads("todo-updated")[0]
        assert published["id"] == parent["id"]
        assert published["completed_subtasks"] == 1
        assert published["total_subtasks"] == 1

    @pytest.mark.api
    def test_invalid_completed_flag_rejected(self, client, db_session, api_headers, parent):
        created = _post(
            client, _subtasks_url(parent), {"title": "Pack"}, api_headers
        ).get_json()["data"]["subtask"]

        response = client.put(
            f"/api/todos/subtasks/{created['id']}",
            data=json.dumps({"completed": "yes"}),
            headers=api_headers,
        )

        assert response.status_code == 400

    @pytest.mark.realtime
    def test_delete_subtask_publishes_parent_update(
        self, client, db_session, api_headers, parent, open_session
    ):
        created = _post(
            client, _subtasks_url(parent), {"title": "Pack"}, api_headers
        ).get_json()["data"]["subtask"]
        sink = open_session("sid-A")

        response = client.delete(f"/api/todos/subtasks/{created['id']}", headers=api_headers)

        assert response.get_json()["data"]["todo"]["total_subtasks"] == 0
        assert sink.names == ["todo-updated"]

    @pytest.mark.api
    def test_update_missing_subtask_is_404(self, client, db_session, api_headers):
        response = client.put(
            "/api/todos/subtasks/missing",
            data=json.dumps({"completed": True}),
            headers=api_headers,
        )

        assert response.status_code == 404
        assert response.get_json()["error"] == "Subtask not found"

    @pytest.mark.api
    def test_deleting_todo_removes_subtasks(self, client, db_session, api_headers, parent):
        created = _post(
            client, _subtasks_url(parent), {"title": "Pack"}, api_headers
        ).get_json()["data"]["subtask"]

        client.delete(f"/api/todos/{parent['id']}", headers=api_headers)

        response = client.put(
            f"/api/todos/subtasks/{created['id']}",
            data=json.dumps({"completed": True}),
            headers=api_headers,
        )
        assert response.status_code == 404


class TestComments:
    @pytest.mark.api
    def test_add_comment_records_author(self, client, db_session, api_headers, parent):
        response = _post(
            client,
            f"/api/todos/{parent['id']}/comments",
            {"content": "  Looks good  "},
            api_headers,
        )

        assert response.status_code == 201
        comment = response.get_json()["data"]["comment"]
        assert comment["content"] == "Looks good"
        assert comment["todo_id"] == parent["id"]
        assert comment["user"] == {"id": 42, "name": "user_42"}
        assert response.get_json()["data"]["todo"]["comments"][0]["id"] == comment["id"]

    @pytest.mark.api
    @pytest.mark.parametrize("body", [{}, {"content": ""}, {"content": "   "}, {"content": 5}])
    def test_empty_comment_rejected(self, client, db_session, api_headers, parent, body):
        response = _post(client, f"/api/todos/{parent['id']}/comments", body, api_headers)

        assert response.status_code == 400
        assert response.get_json()["details"][0]["message"] == "Comment content is required"

    @pytest.mark.realtime
    def test_add_comment_publishes_comment_added(
        self, client, db_session, api_headers, parent, open_session
    ):
        sink = open_session("sid-A")

        response = _post(
            client, f"/api/todos/{parent['id']}/comments", {"content": "On it"}, api_headers
        )

        assert sink.names == ["comment-added"]
        assert sink.payloads("comment-added")[0] == response.get_json()["data"]["comment"]

    @pytest.mark.realtime
    def test_edit_and_delete_comment_publish_parent_update(
        self, client, db_session, api_headers, parent, open_session
    ):
        # Arrange
        comment = _post(
            client, f"/api/todos/{parent['id']}/comments", {"content": "draft"}, api_headers
        ).get_json()["data"]["comment"]
        sink = open_session("sid-A")

        # Act
        edited = client.put(
            f"/api/todos/comments/{comment['id']}",
            data=json.dumps({"content": "final"}),
            headers=api_headers,
        )
        removed = client.delete(f"/api/todos/comments/{comment['id']}", headers=api_headers)

        # Assert
        assert edited.get_json()["data"]["comment"]["content"] == "final"
        assert removed.get_json()["data"]["todo"]["comments"] == []
        assert sink.names == ["todo-updated", "todo-updated"]
        assert sink.payloads("todo-updated")[0]["comments"][0]["content"] == "final"

    @pytest.mark.api
    def test_other_user_cannot_edit_comment(
        self, client, db_session, api_headers, other_user_headers, parent
    ):
        comment = _post(
            client, f"/api/todos/{parent['id']}/comments", {"content": "mine"}, api_headers
        ).get_json()["data"]["comment"]

        response = client.put(
            f"/api/todos/comments/{comment['id']}",
            data=json.dumps({"content": "theirs"}),
            headers=other_user_headers,
        )

        assert response.status_code == 404
        assert response.get_json()["error"] == "Comment not found"
