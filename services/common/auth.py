"""
共通: 認可ゲート (Authorization Gate)

認証（トークンの発行・検証）は上流のゲートウェイ / IdP の責務。
ここでは検証済みの「呼び出し元 ID + ロール集合」だけを扱う。

  ┌─────────┐  X-User-Id / X-User-Roles  ┌──────────────┐
  │ Gateway │──────────────────────────▶│ Order/Product│
  └─────────┘                             └──────────────┘

ロール判定はエンドポイントごとに散らばらせず、各操作の先頭で
authorize() を1回呼ぶ。Principal は暗黙のグローバル状態から読まず、
必ず引数として明示的に渡す。
"""

from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, Header

from .errors import Forbidden, Unauthenticated

USER_ID_HEADER = "X-User-Id"
USER_ROLES_HEADER = "X-User-Roles"


class Role(str, Enum):
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"
    USER = "USER"
    # サービス間呼び出し専用（在庫の引き当て・解放）
    SERVICE = "SERVICE"


@dataclass(frozen=True)
class Principal:
    """認証済みの呼び出し元"""

    id: str
    roles: frozenset[Role] = frozenset()

    def has_any(self, required: frozenset[Role]) -> bool:
        return bool(self.roles & required)


def parse_roles(raw: str | None) -> frozenset[Role]:
    """カンマ区切りのロール文字列を解釈する。未知のラベルは無視する。"""
    if not raw:
        return frozenset()
    roles = set()
    for label in raw.split(","):
        label = label.strip().upper()
        if label in Role.__members__:
            roles.add(Role[label])
    return frozenset(roles)


def authorize(principal: Principal, required: frozenset[Role]) -> None:
    """
    必要ロール集合と保持ロール集合の共通部分が空なら Forbidden。

    ストアやリモート呼び出しより前に評価すること（fail-closed）。
    """
    if not principal.has_any(required):
        needed = ", ".join(sorted(r.value for r in required))
        raise Forbidden(f"Requires one of roles: {needed}")


async def current_principal(
    x_user_id: str | None = Header(default=None),
    x_user_roles: str | None = Header(default=None),
) -> Principal:
    """FastAPI 依存関数: ゲートウェイが付与したヘッダから Principal を作る。"""
    if not x_user_id or not x_user_id.strip():
        raise Unauthenticated("Missing authenticated principal")
    return Principal(id=x_user_id.strip(), roles=parse_roles(x_user_roles))


def require_roles(required: frozenset[Role]):
    """
    ロール判定を FastAPI 依存関数として先に済ませる。

    リクエストボディの検証より前に評価されるので、権限の無い呼び出し元には
    ボディの中身にかかわらず 403 を返す。
    """

    async def dependency(principal: Principal = Depends(current_principal)) -> Principal:
        authorize(principal, required)
        return principal

    return dependency
