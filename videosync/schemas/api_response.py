"""
videosync.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

REST 接口的统一应答体。

除 ``/health`` 外的 HTTP 返回值（包括 404 / 500）都包装成
``{"code", "data", "msg"}``，前端只需要一套解析逻辑。
"""
from __future__ import annotations

from typing import Any, Generic, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一 JSON 应答体。

    .. code-block:: json

        {"code": 200, "data": [{"roomId": "R1", "hasHost": true, ...}], "msg": "success"}

    ``code`` 与 HTTP 状态码保持一致。
    """

    code: int = Field(default=200, description="业务状态码，与 HTTP 状态码一致")
    data: T = Field(..., description="业务数据")
    msg: str = Field(default="success", description="状态消息")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str = "error", code: int = 500, data: Any = None) -> ApiResponse[Any]:
        return cls(code=code, data=data, msg=msg)

    def as_json_response(self) -> JSONResponse:
        """失败应答直接转成 ``JSONResponse``，HTTP 状态码取 ``code``。"""
        return JSONResponse(status_code=self.code, content=self.model_dump(by_alias=True))
