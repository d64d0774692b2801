from typing import Any, Optional, cast

from sqlalchemy import text
from sqlalchemy.orm import Session

from tests import UowFactory, random_email, random_title
from tests.app.domain.models import Post


def insert_author(session: Session, name: str, email: str = "") -> int:
    session.execute(
        text(
            "INSERT INTO author (name, email, deleted, row_version)"
            " VALUES (:name, :email, 0, 1)"
        ),
        dict(name=name, email=email or random_email(name)),
    )
    [[author_id]] = session.execute(
        text("SELECT max(id) FROM author WHERE name=:name"), dict(name=name)
    )
    session.commit()

    return cast(int, author_id)


def insert_post(
    session: Session,
    title: str = "",
    author_id: Optional[int] = None,
    deleted: bool = False,
) -> int:
    title = title or random_title()
    session.execute(
        text(
            "INSERT INTO post (title, body, author_id, deleted, row_version)"
            " VALUES (:title, '', :author_id, :deleted, 1)"
        ),
        dict(title=title, author_id=author_id, deleted=deleted),
    )
    [[post_id]] = session.execute(
        text("SELECT max(id) FROM post WHERE title=:title"), dict(title=title)
    )
    session.commit()

    return cast(int, post_id)


def fetch_post_row(session: Session, post_id: int) -> Any:
    """소프트 삭제 여부와 관계없이 로우를 직접 조회합니다."""
    return session.execute(
        text("SELECT * FROM post WHERE id=:id"), dict(id=post_id)
    ).mappings().first()


def add_post(
    make_uow: UowFactory,
    title: str = "",
    body: str = "",
    author_id: Optional[int] = None,
    user: str = "alice",
) -> Post:
    """UoW 하나로 게시글을 저장하고, 분리된(detached) 객체를 리턴합니다."""
    uow = make_uow(user)
    post = uow[Post].insert(Post(title or random_title(), body, author_id))
    uow.save()
    uow.dispose()

    return post
