import pytest

from backend.app.models import VideoIdea
from backend.app.services.idea_store import (
    InMemoryIdeaStore,
    RecentIdeasBuffer,
    StoreError,
    StoreNotProvisionedError,
    SupabaseIdeaStore,
    idea_to_row,
    row_to_idea,
)


def make_idea(idea_id="idea-1", created_at="2024-06-15T12:00:00Z", score=70, platform="youtube"):
    return VideoIdea(
        id=idea_id,
        title=f"Idea {idea_id}",
        concept="A concept",
        virality_score=score,
        platform=platform,
        content_type="tutorial",
        created_at=created_at,
    )


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else b"x"
        self.text = "" if payload is None else str(payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.response

    def get(self, url, headers=None, timeout=None):
        self.requests.append(("GET", url, {"headers": headers}))
        return self.response


def test_in_memory_delete_only_removes_own_rows():
    store = InMemoryIdeaStore()
    store.create(make_idea("a"), "user-1")

    assert store.delete("a", "user-2") == 0
    assert [idea.id for idea in store.list_for_user("user-1")] == ["a"]
    assert store.delete("a", "user-1") == 1
    assert store.list_for_user("user-1") == []
    assert store.delete("a", "user-1") == 0


def test_in_memory_lists_newest_first_per_user():
    store = InMemoryIdeaStore()
    store.create(make_idea("old", "2024-06-01T00:00:00Z"), "user-1")
    store.create(make_idea("new", "2024-06-10T00:00:00Z"), "user-1")
    store.create(make_idea("theirs", "2024-06-12T00:00:00Z"), "user-2")

    ideas = store.list_for_user("user-1")
    assert [idea.id for idea in ideas] == ["new", "old"]
    assert all(idea.user_id == "user-1" and idea.is_saved for idea in ideas)
    assert [idea.id for idea in store.list_recent(2)] == ["theirs", "new"]


def test_in_memory_token_lookup():
    store = InMemoryIdeaStore(tokens={"tok": "user-1"})
    assert store.get_user_id("tok") == "user-1"
    assert store.get_user_id("other") is None


def test_recent_buffer_is_bounded_newest_first():
    buffer = RecentIdeasBuffer(max_size=10)
    for index in range(12):
        buffer.push(make_idea(f"i{index}"))

    assert len(buffer) == 10
    assert [idea.id for idea in buffer.recent(3)] == ["i11", "i10", "i9"]
    assert buffer.recent()[-1].id == "i2"


def test_row_mapping_uses_snake_case_columns():
    row = idea_to_row(make_idea("a"), "user-1")
    assert row["virality_score"] == 70
    assert row["content_type"] == "tutorial"
    assert row["video_format"]["hooks"] == ["Hook 1", "Hook 2", "Hook 3"]
    assert row["user_id"] == "user-1"

    row["created_at"] = "2024-06-15T12:00:00Z"
    idea = row_to_idea(row)
    assert idea.is_saved is True
    assert idea.to_wire()["viralityScore"] == 70


def test_supabase_create_posts_row_and_returns_saved_idea():
    saved_row = idea_to_row(make_idea("a"), "user-1")
    saved_row["created_at"] = "2024-06-15T12:00:00Z"
    session = FakeSession(FakeResponse(201, [saved_row]))
    store = SupabaseIdeaStore("https://db.example.co/", "service-key", session=session)

    saved = store.create(make_idea("a"), "user-1")

    method, url, kwargs = session.requests[0]
    assert method == "POST"
    assert url == "https://db.example.co/rest/v1/video_ideas"
    assert kwargs["json"]["user_id"] == "user-1"
    assert kwargs["headers"]["Prefer"] == "return=representation"
    assert kwargs["headers"]["apikey"] == "service-key"
    assert saved.id == "a"
    assert saved.is_saved is True


@pytest.mark.parametrize("code", ["42P01", "PGRST205"])
def test_supabase_missing_table_is_not_provisioned(code):
    session = FakeSession(FakeResponse(404, {"code": code, "message": "relation does not exist"}))
    store = SupabaseIdeaStore("https://db.example.co", "service-key", session=session)

    with pytest.raises(StoreNotProvisionedError):
        store.list_for_user("user-1")


def test_supabase_other_errors_keep_message():
    session = FakeSession(FakeResponse(400, {"code": "22P02", "message": "invalid input syntax"}))
    store = SupabaseIdeaStore("https://db.example.co", "service-key", session=session)

    with pytest.raises(StoreError) as excinfo:
        store.list_recent()
    assert not isinstance(excinfo.value, StoreNotProvisionedError)
    assert excinfo.value.message == "invalid input syntax"


def test_supabase_delete_filters_by_owner():
    session = FakeSession(FakeResponse(200, []))
    store = SupabaseIdeaStore("https://db.example.co", "service-key", session=session)

    assert store.delete("a", "user-2") == 0
    method, _url, kwargs = session.requests[0]
    assert method == "DELETE"
    assert kwargs["params"] == {"id": "eq.a", "user_id": "eq.user-2"}


def test_supabase_rejected_token_has_no_user():
    session = FakeSession(FakeResponse(401, {"msg": "invalid JWT"}))
    store = SupabaseIdeaStore("https://db.example.co", "service-key", session=session)
    assert store.get_user_id("bad-token") is None
