from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable
from picfight.models.board import Board


def _norm(identity: str | None) -> str:
    return (identity or "").strip().lower()


def can_access_board(board: Board, identity: str) -> bool:
    """
    First match wins: public board, creator, then the allow-list.
    Identity strings are compared case-insensitively.
    """
    if board.is_public:
        return True
    who = _norm(identity)
    if not who:
        return False
    if _norm(board.created_by) == who:
        return True
    return any(_norm(email) == who for email in (board.allowed_emails or []))


@dataclass(frozen=True)
class AuthorizationPolicy:
    """Admin/owner decisions, injected so callers never compare against literals."""
    admin_emails: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_emails(cls, emails: Iterable[str]) -> "AuthorizationPolicy":
        return cls(frozenset(_norm(e) for e in emails if _norm(e)))

    def is_admin(self, identity: str) -> bool:
        return _norm(identity) in self.admin_emails

    def can_create_board(self, identity: str) -> bool:
        return self.is_admin(identity)

    def can_manage_board(self, board: Board, identity: str) -> bool:
        return _norm(board.created_by) == _norm(identity) or self.is_admin(identity)

    def can_view_all_submissions(self, board: Board, identity: str) -> bool:
        return self.can_manage_board(board, identity)
