class FastRepoError(Exception):
    """``FastRepo`` 와 관련된 모든 에러의 기본 클래스."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    ...


class FastRepoInitError(FastRepoError):
    """프로젝트 설정 로드 및 초기화 실패 에러."""

    ...


class ValidationError(FastRepoError):
    """검색 조건이나 엔티티 형태가 올바르지 않을 때 발생합니다.

    항상 저장소(DB)에 접근하기 전에 발생합니다.
    """

    ...


class PersistenceError(FastRepoError):
    """저장소가 변경 사항이나 쿼리를 거부했을 때 발생하는 에러.

    원래 예외는 ``__cause__`` 로 연결됩니다.
    """

    ...


class ConcurrencyConflict(FastRepoError):
    """다른 요청이 먼저 같은 엔티티를 변경해서 저장이 거부된 경우.

    이 레이어에서는 재시도 하지 않습니다.
    """

    ...
