from __future__ import annotations

from typing import Optional

from bsm.domain.errors import NotFoundError, ValidationError
from bsm.domain.models import Client


class ClientService:
    def __init__(self, repo):
        self.repo = repo

    def add_client(
        self, first_name: str, last_name: str, email: Optional[str] = None, client_id: Optional[str] = None
    ) -> str:
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name or not last_name:
            raise ValidationError("First and last name are required.")
        email = (email or "").strip() or None
        if email is not None and "@" not in email:
            raise ValidationError("Email is not valid.")
        return self.repo.add_client(first_name, last_name, email=email, client_id=client_id)

    def get_client(self, client_id: str) -> Client:
        c = self.repo.find_client_by_id(client_id)
        if not c:
            raise NotFoundError("Client not found.", ids=[client_id])
        return c
