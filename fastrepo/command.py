"""Command line script for FastRepo."""
import glob
import importlib
import os
import shutil
import sys
from argparse import ArgumentParser, Namespace, RawTextHelpFormatter
from pathlib import Path
from textwrap import dedent
from typing import Optional, Sequence

from colorama import Fore, Style
from colorama import init as init_colors
from sqlalchemy import MetaData
from sqlalchemy.exc import SQLAlchemyError

from fastrepo.config import FastRepo
from fastrepo.core import FastRepoError, FastRepoInitError
from fastrepo.logging import get_logger
from fastrepo.orm import init_engine

init_colors()  # For Windows environment

YELLOW, CYAN, RED, GREEN, WHITE = (
    Fore.YELLOW,
    Fore.CYAN,
    Fore.RED,
    Fore.GREEN,
    Fore.WHITE,
)
WHITE_EX, CYAN_EX = Fore.LIGHTWHITE_EX, Fore.LIGHTCYAN_EX

logger = get_logger("fastrepo.command")


def fg(text, color=Fore.WHITE):
    """텍스트를 지정된 ANSI 컬러로 출력합니다."""
    return f"{color}{text}{Fore.RESET}"


def bold(text, color=Fore.WHITE):
    """텍스트를 지정된 ANSI 컬러와 밝기 효과를 주어 출력합니다."""
    return f"{Style.BRIGHT}{color}{text}{Style.RESET_ALL}"


class FastRepoCommand:
    def __init__(self, path: Optional[Path] = None):
        """Constructor.

        작업 순서:
            1. 프로젝트 이름은 암시적으로는 현재 경로의 이름인데, `setup.cfg`
               파일의 `[fastrepo]` 섹션에서 지정할 수도 있다.
            2. `<module>/config.py` 가 있으면 그 `Config` 클래스를 로드한다.
        """
        self.path = Path(os.path.abspath(path or "."))
        self.config = FastRepo.load_from_config(self.path)

    def banner(self, msg, icon=""):
        """배너를 표시합니다."""
        if os.name == "nt":
            icon = ""
        banner_width = min(75, shutil.get_terminal_size().columns)
        print("─" * banner_width)
        print(f"{icon} {msg}")
        print("─" * banner_width)

    def info(self):
        """FastRepo 프로젝트 설정 정보를 출력합니다."""
        dot = bold("-", YELLOW)
        self.banner(f"{bold('FastRepo Information')}", icon="💡")
        print(dot, fg("Name", CYAN), "    :", fg(self.config.name, WHITE_EX))
        print(dot, fg("Title", CYAN), "   :", fg(self.config.title, WHITE_EX))
        print(dot, fg("Module", CYAN), "  :", fg(self.config.module_name, WHITE_EX))
        print(dot, fg("Path", CYAN), "    :", fg(self.path, WHITE_EX))
        print(dot, fg("Database", CYAN), ":", fg(self.config.get_db_url(), WHITE_EX))

    def load_orm_mappers(self) -> MetaData:
        """`<module>/adapters/orm.py` 의 `init_mappers()` 를 호출합니다.

        `adapters/orm.py` 가 없으면 `adapters/orm/*.py` 모듈들을 모두 읽습니다.
        """
        metadata = MetaData()
        module_path = self.config.module_path
        mapper_file_path = module_path / "adapters" / "orm.py"

        if mapper_file_path.exists():
            mapper_paths = [mapper_file_path]
        else:
            mapper_paths = [
                Path(p) for p in sorted(glob.glob(f"{module_path}/adapters/orm/*.py"))
            ]

        if not mapper_paths:
            raise FastRepoInitError(f"no ORM mappers found under: {module_path}")

        if str(self.path) not in sys.path:
            sys.path.insert(0, str(self.path))

        for path in mapper_paths:
            if path.name.startswith("_"):
                continue
            rel_parts = path.relative_to(module_path).with_suffix("").parts
            mapper_modname = ".".join([self.config.module_name, *rel_parts])
            module = importlib.import_module(mapper_modname)
            # 모듈에 `init_mappers()` 함수가 있다면 호출합니다.
            init_mappers = getattr(module, "init_mappers", None)
            if init_mappers and callable(init_mappers):
                init_mappers(metadata)

        return metadata

    def initdb(self, drop=False, show_sql=False) -> MetaData:
        """ORM 매핑된 모든 테이블을 생성합니다.

        `--drop` 옵션을 주면 기존 테이블을 모두 삭제한 뒤 다시 생성합니다.
        """
        bullet = bold("✓" if os.name != "nt" else "v", GREEN)
        metadata = self.load_orm_mappers()
        logger.info(
            f"{bullet} init {fg('ORM mappings', CYAN)}.... %s",
            bold(f"{len(metadata.tables)}", YELLOW) + " tables mapped.",
        )

        try:
            init_engine(
                metadata,
                self.config.get_db_url(),
                connect_args=self.config.get_db_connect_args(),
                poolclass=self.config.get_db_poolclass(),
                show_log=show_sql,
                drop_all=drop,
            )
        except SQLAlchemyError as e:
            raise FastRepoInitError(f"database initialization failed: {e}") from e
        logger.info(
            f"{bullet} init {fg('database', CYAN)}........ %s",
            bold(f"{self.config.get_db_url()}", YELLOW),
        )
        return metadata


class FastRepoCommandParser:
    """콘솔 커맨드 명령어 파서.

    실제 작업은 `FastRepoCommand` 객체에 위임합니다.
    """

    def __init__(self, path: Optional[Path] = None):
        """기본 생성자."""
        self.parser = ArgumentParser(
            "fastrepo",
            description=f"✨ {bold('FastRepo')} : {fg('command line utility', CYAN_EX)}",
        )
        self._subparsers = self.parser.add_subparsers(dest="command")
        self._path = path

        for command, handler in [
            ("info", FastRepoCommand.info),
            ("initdb", FastRepoCommand.initdb),
        ]:
            # 핸들러 함수의 주석을 커맨드라인 도움말로 변환하기 위한 작업입니다.
            doc = None
            if handler.__doc__:
                lines = handler.__doc__.splitlines()
                doc = lines[0] + "\n" + dedent("\n".join(lines[1:]))
            parser = self._subparsers.add_parser(
                command,
                description=doc,
                formatter_class=RawTextHelpFormatter,
            )
            if command == "initdb":
                parser.add_argument(
                    "--drop", action="store_true", help="기존 테이블을 삭제 후 생성"
                )
                parser.add_argument(
                    "--show-sql", action="store_true", help="생성된 CREATE 문 출력"
                )

    def parse_args(self, args: Sequence[str]) -> int:
        """콘솔 명령어를 해석해서 적절한 작업을 수행합니다."""
        if not args:
            self.parser.print_help()
            return 0

        ns = self.parser.parse_args(args)
        try:
            cmd = FastRepoCommand(self._path)
            if ns.command == "initdb":
                self.initdb(cmd, ns)
            else:
                getattr(cmd, ns.command)()
        except FastRepoError as e:
            print(
                f"{bold('FastRepo ERROR:', RED)} {fg(e.message, YELLOW)}",
                file=sys.stderr,
            )
            return 1
        return 0

    def initdb(self, cmd: FastRepoCommand, ns: Namespace):
        """`initdb` 명령어 처리."""
        cmd.initdb(drop=ns.drop, show_sql=ns.show_sql)


def console_main():
    parser = FastRepoCommandParser()
    sys.exit(parser.parse_args(sys.argv[1:]))


if __name__ == "__main__":
    console_main()
