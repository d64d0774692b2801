"""`fastrepo` 커맨드라인 파서 테스트."""
import pytest

from fastrepo.command import FastRepoCommandParser


def test_print_help_without_args(capsys):
    parser = FastRepoCommandParser()

    assert 0 == parser.parse_args([])
    assert "fastrepo" in capsys.readouterr().out


def test_unknown_command():
    parser = FastRepoCommandParser()

    with pytest.raises(SystemExit):
        parser.parse_args(["deploy"])


def test_subcommand_help_from_docstring(capsys):
    """핸들러 함수의 주석이 서브 커맨드 도움말이 됩니다."""
    parser = FastRepoCommandParser()

    with pytest.raises(SystemExit):
        parser.parse_args(["initdb", "--help"])

    out = capsys.readouterr().out
    assert "ORM 매핑된 모든 테이블을 생성합니다." in out
    assert "--drop" in out


def test_info(tmp_project, capsys):
    path = tmp_project("myproject", "[fastrepo]\nname = blog\ntitle = Blog\n")
    parser = FastRepoCommandParser(path)

    assert 0 == parser.parse_args(["info"])
    out = capsys.readouterr().out
    assert "blog" in out
    assert "sqlite://" in out


def test_initdb_without_mappers(tmp_project, capsys):
    """ORM 매핑 모듈이 없으면 에러 메세지를 출력하고 1을 리턴합니다."""
    path = tmp_project("myproject", "[fastrepo]\nname = blog\n")
    parser = FastRepoCommandParser(path)

    assert 1 == parser.parse_args(["initdb"])
    assert "no ORM mappers found" in capsys.readouterr().err


def test_invalid_project_name(tmp_project, capsys):
    path = tmp_project("myproject", "[fastrepo]\nname = my-blog\n")
    parser = FastRepoCommandParser(path)

    assert 1 == parser.parse_args(["info"])
    assert "invalid project name" in capsys.readouterr().err
