"""Helpers for building the outbound envelope of a relayed request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.models.proxy import ErrorEnvelope, HttpResponse, RequestEnvelope, ResponseEnvelope


@dataclass(frozen=True)
class ResponseCorrelator:
    """Ties an outcome to the id of the request it answers.

    Stateless: the remote platform matches ids on its side, so correlation is
    just echoing the id the request arrived with. Outcomes are only ever sent
    through the session that accepted the request, which keeps ids from
    leaking onto a later connection.
    """

    def response(self, request: RequestEnvelope, result: HttpResponse) -> ResponseEnvelope:
        return ResponseEnvelope(
            id=request.id,
            status=result.status,
            headers=list(result.headers),
            body=result.body,
        )

    def error(self, request_id: Optional[int], failure: BaseException | str) -> ErrorEnvelope:
        return ErrorEnvelope(id=request_id, message=str(failure))
