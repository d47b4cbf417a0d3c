"""
共通: エラー分類とHTTPへのマッピング

各サービスのハンドラは HTTPException を直接投げず、ここで定義した
ドメイン例外を投げる。FastAPI の例外ハンドラがエラー種別ごとに
ステータスコードへ変換するので、元のエラー種別がレスポンスに残る。

  NotFound          → 404
  Forbidden         → 403 (ロール不一致)
  Unauthenticated   → 401 (呼び出し元の ID がない)
  InsufficientStock → 409
  Conflict          → 409 (ID 重複など)
  RemoteUnavailable → 503 (在庫サービスへの通信失敗・タイムアウト)
  ValidationError   → 422
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    status_code = 500
    kind = "InternalError"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.detail}


class NotFound(ServiceError):
    status_code = 404
    kind = "NotFound"


class Forbidden(ServiceError):
    status_code = 403
    kind = "Forbidden"


class Unauthenticated(ServiceError):
    status_code = 401
    kind = "Unauthenticated"


class InsufficientStock(ServiceError):
    status_code = 409
    kind = "InsufficientStock"


class Conflict(ServiceError):
    status_code = 409
    kind = "Conflict"


class RemoteUnavailable(ServiceError):
    status_code = 503
    kind = "RemoteUnavailable"


class ValidationError(ServiceError):
    status_code = 422
    kind = "ValidationError"


async def _service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={
            "error": ValidationError.kind,
            "detail": jsonable_encoder(exc.errors()),
        },
    )


def install_error_handlers(app: FastAPI) -> None:
    """ドメイン例外とリクエスト検証エラーのハンドラを登録する。"""
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
