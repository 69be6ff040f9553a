"""
Client for the Dify AI service: blocking chat messages and knowledge-base
documents. Configuration comes from an explicit Settings instance.
"""
import json
import logging
from typing import Optional

import httpx
from pydantic import BaseModel

from config import Settings

logger = logging.getLogger(__name__)


class DifyError(Exception):
    """Dify is unconfigured, unreachable, or answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChatReply(BaseModel):
    answer: str
    conversation_ref: Optional[str] = None


class DifyClient:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        # Tests pass an httpx.MockTransport here
        self._transport = transport

    @property
    def chat_configured(self) -> bool:
        return bool(self.settings.dify_api_key)

    @property
    def dataset_configured(self) -> bool:
        return bool(self.settings.dify_dataset_api_key and self.settings.dify_dataset_id)

    def _client(self, api_key: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.dify_api_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=self.settings.dify_timeout,
            transport=self._transport,
        )

    async def _request(self, api_key: str, method: str, path: str, **kwargs) -> httpx.Response:
        async with self._client(api_key) as client:
            try:
                return await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                logger.error("Dify request %s %s failed: %s", method, path, e)
                raise DifyError(f"Dify request failed: {e}") from e

    @staticmethod
    def _check(response: httpx.Response, action: str):
        if response.is_error:
            logger.error("Dify %s error: %s %s", action, response.status_code, response.text)
            raise DifyError(f"Dify API error: {response.status_code}", response.status_code)

    async def send_chat_message(
        self,
        query: str,
        user_id: str,
        user_name: Optional[str] = None,
        context: str = "",
        conversation_ref: Optional[str] = None,
    ) -> ChatReply:
        """
        Send one user turn and wait for the full answer.
        conversation_ref is Dify's own conversation id; empty starts a new one.
        """
        if not self.chat_configured:
            raise DifyError("DIFY_API_KEY is not configured")

        payload = {
            "inputs": {
                "name": user_name or "ユーザー",
                "user_context": context,
            },
            "query": query,
            "response_mode": "blocking",
            "conversation_id": conversation_ref or "",
            "user": user_id,
        }
        response = await self._request(self.settings.dify_api_key, "POST", "/chat-messages", json=payload)
        self._check(response, "chat")

        data = response.json()
        return ChatReply(
            answer=data.get("answer") or "",
            conversation_ref=data.get("conversation_id") or None,
        )

    async def upload_document(self, filename: str, content: bytes, mime_type: str) -> str:
        """Add a file to the knowledge base and return its document id."""
        if not self.dataset_configured:
            raise DifyError("DIFY_DATASET_API_KEY and DIFY_DATASET_ID are not configured")

        process = {
            "indexing_technique": "high_quality",
            "process_rule": {"mode": "automatic"},
        }
        response = await self._request(
            self.settings.dify_dataset_api_key,
            "POST",
            f"/datasets/{self.settings.dify_dataset_id}/document/create-by-file",
            files={"file": (filename, content, mime_type)},
            data={"data": json.dumps(process)},
        )
        self._check(response, "upload")

        document_id = (response.json().get("document") or {}).get("id")
        if not document_id:
            raise DifyError("Dify upload returned no document id")
        logger.info("Uploaded %s to Dify as %s", filename, document_id)
        return document_id

    async def delete_document(self, document_id: str):
        """Remove a document from the knowledge base. Already-gone documents are fine."""
        if not self.dataset_configured:
            raise DifyError("DIFY_DATASET_API_KEY and DIFY_DATASET_ID are not configured")

        response = await self._request(
            self.settings.dify_dataset_api_key,
            "DELETE",
            f"/datasets/{self.settings.dify_dataset_id}/documents/{document_id}",
        )
        if response.status_code == 404:
            logger.info("Dify document %s already deleted", document_id)
            return
        self._check(response, "delete")
