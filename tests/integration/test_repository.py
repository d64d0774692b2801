# pylint: disable=protected-access
"""SqlAlchemyRepository 통합 테스트."""
from datetime import timedelta

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.orm import Session, selectinload

from fastrepo.core import ConcurrencyConflict, ValidationError
from tests import CLOCK_START, UowFactory
from tests.app.adapters.repos import PostCriteria
from tests.app.domain.models import Author, Post
from tests.integration import add_post, fetch_post_row, insert_author, insert_post


def test_insert_and_read(make_uow: UowFactory) -> None:
    """저장한 엔티티는 다른 UoW 에서 같은 값으로 조회됩니다."""
    post = add_post(make_uow, "Foo", "Bar")

    found = make_uow("bob")[Post].read(post.id)

    assert found == post
    assert ("alice", CLOCK_START) == (found.created_by, found.created_at)
    assert ("alice", CLOCK_START) == (found.updated_by, found.updated_at)
    assert found.deleted is False
    assert 1 == found.row_version


def test_insert_is_pending_until_save(make_uow: UowFactory) -> None:
    uow = make_uow()
    post = uow[Post].insert(Post("Foo"))

    assert "alice" == post.created_by
    assert post.id is None
    assert [] == make_uow()[Post].search().all()

    uow.save()
    assert post.id
    assert [post] == make_uow()[Post].search().all()


def test_insert_with_explicit_user(make_uow: UowFactory) -> None:
    uow = make_uow()
    post = uow[Post].insert(Post("Foo"), user="batch")

    assert "batch" == post.created_by == post.updated_by


def test_insert_persisted_entity(make_uow: UowFactory) -> None:
    post = add_post(make_uow)
    uow = make_uow()
    found = uow[Post].read(post.id)

    with pytest.raises(ValidationError):
        uow[Post].insert(found)


def test_insert_wrong_kind(make_uow: UowFactory) -> None:
    with pytest.raises(ValidationError):
        make_uow()[Post].insert(Author("alice"))


def test_soft_delete(make_uow: UowFactory, session: Session) -> None:
    """삭제된 엔티티는 조회되지 않지만 로우는 남아 있습니다."""
    post = add_post(make_uow)

    uow = make_uow("bob")
    repo = uow[Post]
    repo.delete(repo.read(post.id))
    uow.save()

    other = make_uow()
    assert other[Post].read(post.id) is None
    assert [] == other[Post].search().all()
    assert [] == other[Post].search_dto()

    row = fetch_post_row(session, post.id)
    assert row["deleted"]
    assert "bob" == row["deleted_by"]
    assert row["deleted_at"] is not None


def test_delete_twice_is_noop(make_uow: UowFactory) -> None:
    post = add_post(make_uow)
    uow = make_uow("bob")
    found = uow[Post].read(post.id)
    uow[Post].delete(found)
    uow.save()

    uow[Post].delete(found, user="carol")

    assert "bob" == found.deleted_by
    assert not uow.session.dirty


def test_update_detached_entity(make_uow: UowFactory) -> None:
    """다른 UoW 에서 얻은 엔티티를 수정하면 생성 정보는 그대로 남습니다."""
    post = add_post(make_uow, "Foo")
    post.title = "Bar"

    uow = make_uow("bob")
    assert post is uow[Post].update(post)
    uow.save()

    found = make_uow()[Post].read(post.id)
    assert "Bar" == found.title
    assert ("alice", CLOCK_START) == (found.created_by, found.created_at)
    assert ("bob", CLOCK_START + timedelta(seconds=1)) == (
        found.updated_by,
        found.updated_at,
    )
    assert 2 == found.row_version


def test_update_tracked_entity(make_uow: UowFactory) -> None:
    post = add_post(make_uow, "Foo")
    uow = make_uow("bob")
    found = uow[Post].read(post.id)
    found.body = "updated"
    uow[Post].update(found)
    uow.save()

    assert "updated" == make_uow()[Post].read(post.id).body


def test_update_new_object_with_id(make_uow: UowFactory) -> None:
    """프로세스 밖에서 전달된 객체는 저장된 로우 위에 병합됩니다."""
    post = add_post(make_uow, "Foo")

    uow = make_uow("bob")
    incoming = Post("New title", "New body", id=post.id)
    merged = uow[Post].update(incoming)
    uow.save()

    assert merged is not incoming
    found = make_uow()[Post].read(post.id)
    assert ("New title", "New body") == (found.title, found.body)
    assert "alice" == found.created_by
    assert "bob" == found.updated_by


def test_update_with_stale_version(make_uow: UowFactory) -> None:
    post = add_post(make_uow, "Foo")

    uow = make_uow("bob")
    found = uow[Post].read(post.id)
    found.title = "Bob's"
    uow[Post].update(found)
    uow.save()

    incoming = Post("Mine", id=post.id)
    incoming.row_version = 1
    with pytest.raises(ConcurrencyConflict):
        make_uow()[Post].update(incoming)


def test_update_missing_or_deleted_row(make_uow: UowFactory, session: Session) -> None:
    deleted_id = insert_post(session, deleted=True)
    uow = make_uow()

    with pytest.raises(ConcurrencyConflict):
        uow[Post].update(Post("Foo", id=9999))

    with pytest.raises(ConcurrencyConflict):
        uow[Post].update(Post("Foo", id=deleted_id))


def test_update_without_id(make_uow: UowFactory) -> None:
    with pytest.raises(ValidationError):
        make_uow()[Post].update(Post("Foo"))


def test_update_entity_of_another_uow(make_uow: UowFactory) -> None:
    post = add_post(make_uow)
    found = make_uow()[Post].read(post.id)

    with pytest.raises(ValidationError):
        make_uow()[Post].update(found)


def test_search_with_criteria(make_uow: UowFactory, session: Session) -> None:
    author_id = insert_author(session, "Alice")
    add_post(make_uow, "Flask tips", author_id=author_id)
    add_post(make_uow, "FastAPI tips", author_id=author_id)
    add_post(make_uow, "Flask again")

    repo = make_uow()[Post]

    titles = {p.title for p in repo.search({"title": "Flask"})}
    assert {"Flask tips", "Flask again"} == titles

    titles = {p.title for p in repo.search(PostCriteria(author_id=author_id))}
    assert {"Flask tips", "FastAPI tips"} == titles

    assert 3 == len(repo.search().all())
    assert [] == repo.search({"title": "Django"}).all()
    assert [] == repo.search_dto({"title": "Django"})


def test_search_with_invalid_criteria(make_uow: UowFactory) -> None:
    """검색 조건 검증은 DB에 접근하기 전에 실패합니다."""
    with pytest.raises(ValidationError):
        make_uow()[Post].search({"author_id": "not a number"})


def test_search_with_filter_function(make_uow: UowFactory, session: Session) -> None:
    insert_author(session, "Alice")
    insert_author(session, "Bob")

    authors = make_uow()[Author].search({"name": "Ali"}).all()

    assert ["Alice"] == [a.name for a in authors]


def test_search_is_lazy(make_uow: UowFactory) -> None:
    """쿼리는 순회할 때 실행됩니다."""
    query = make_uow()[Post].search()
    add_post(make_uow, "Foo")

    assert ["Foo"] == [p.title for p in query]


def test_query_composition(make_uow: UowFactory) -> None:
    for title in ["c", "a", "b"]:
        add_post(make_uow, title)

    query = make_uow()[Post].search().order_by(Post.title)

    assert ["a", "b", "c"] == [p.title for p in query]
    assert ["b"] == [p.title for p in query.offset(1).limit(1)]
    assert "a" == query.first().title
    assert 3 == query.count()
    assert 1 == query.where(Post.title == "c").count()


def test_search_without_tracking(make_uow: UowFactory) -> None:
    post = add_post(make_uow)
    uow = make_uow()

    found = uow[Post].search(no_tracking=True).all()
    assert [post] == found
    assert inspect(found[0]).detached
    assert found[0] not in uow.session

    found_one = uow[Post].read(post.id, no_tracking=True)
    assert found_one not in uow.session


def test_include_related(make_uow: UowFactory, session: Session) -> None:
    author_id = insert_author(session, "Alice")
    post = add_post(make_uow, author_id=author_id)

    found = make_uow()[Post].read(post.id, "author")

    assert "Alice" == found.author.name


def test_related_not_loaded_without_include(
    make_uow: UowFactory, session: Session
) -> None:
    author_id = insert_author(session, "Alice")
    post = add_post(make_uow, author_id=author_id)

    found = make_uow()[Post].read(post.id)

    with pytest.raises(InvalidRequestError):
        found.author  # pylint: disable=pointless-statement


def test_include_skips_deleted_related(make_uow: UowFactory, session: Session) -> None:
    """연관 데이터에서도 소프트 삭제된 로우는 제외됩니다."""
    author_id = insert_author(session, "Alice")
    post_id = insert_post(session, "Foo", author_id)
    insert_post(session, "Deleted", author_id, deleted=True)

    uow = make_uow()
    author = uow[Author].read(author_id, "posts")
    assert ["Foo"] == [p.title for p in author.posts]

    query = make_uow()[Post].search(None, "author.posts")
    post = query.where(Post.id == post_id).first()
    assert ["Foo"] == [p.title for p in post.author.posts]


def test_include_by_attribute(make_uow: UowFactory, session: Session) -> None:
    author_id = insert_author(session, "Alice")
    post = add_post(make_uow, author_id=author_id)

    found = make_uow()[Post].search(None, Post.author).first()

    assert post == found
    assert "Alice" == found.author.name


def test_include_unknown_relationship(make_uow: UowFactory) -> None:
    repo = make_uow()[Post]

    with pytest.raises(ValidationError):
        repo.search(None, "comments")

    with pytest.raises(ValidationError):
        repo.read(1, "author.comments")


def test_read_missing(make_uow: UowFactory) -> None:
    repo = make_uow()[Post]

    assert repo.read(None) is None
    assert repo.read(9999) is None


def test_create(make_uow: UowFactory) -> None:
    """`create()` 는 기본값이 채워진 트래킹 되지 않는 객체를 리턴합니다."""
    uow = make_uow()
    post = uow[Post].create()

    assert isinstance(post, Post)
    assert inspect(post).transient
    assert "" == post.body
    assert post.id is None
    assert post.deleted is False

    post.title = "Foo"
    uow[Post].insert(post)
    uow.save()
    assert post.id


def test_query_options(make_uow: UowFactory, session: Session) -> None:
    author_id = insert_author(session, "Alice")
    add_post(make_uow, author_id=author_id)

    found = make_uow()[Post].search().options(selectinload(Post.author)).first()

    assert "Alice" == found.author.name
