#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Job backend client
Abstract job backend interface and its HTTP implementation (httpx)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .errors import TransientTransportError
from ..utils.config import BackendConfig


@dataclass
class BackendResponse:
    """One backend exchange: HTTP status and decoded JSON body (None if not JSON)"""
    http_status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.http_status < 300


class JobBackend(ABC):
    """Black-box job processing backend"""

    @abstractmethod
    async def submit(self, payload: Dict[str, Any]) -> BackendResponse:
        """Submit a batch generation request"""
        pass

    @abstractmethod
    async def status(self, job_id: str) -> BackendResponse:
        """Query job status"""
        pass

    @abstractmethod
    async def results(self, job_id: str) -> BackendResponse:
        """Fetch job results"""
        pass

    @abstractmethod
    async def generate(self, payload: Dict[str, Any]) -> BackendResponse:
        """Synchronous per-item generation (non-batch)"""
        pass

    @abstractmethod
    async def probe(self, path: str) -> BackendResponse:
        """GET an arbitrary backend path (alternative result locations)"""
        pass

    @abstractmethod
    async def resubmit(self, job_id: str) -> BackendResponse:
        """Ask the submission endpoint again for an existing job"""
        pass

    async def domain_counts(self, certification_type: str) -> BackendResponse:
        """Per-domain question counts for a certification"""
        raise NotImplementedError(f"{type(self).__name__} does not provide domain counts")

    async def aclose(self):
        """Release transport resources"""
        pass


class HttpJobBackend(JobBackend):
    """
    Job backend reached over HTTP

    Every call sends the bearer token and returns a BackendResponse for any
    HTTP status; only transport failures raise (TransientTransportError).
    """

    def __init__(self, config: BackendConfig, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize HTTP backend

        Args:
            config: Backend configuration (base URL, token, endpoint paths)
            client: Pre-built httpx client (tests pass one with a MockTransport)
        """
        self.config = config
        self.logger = logging.getLogger('cloudprepper.backend')
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily create the shared httpx client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip('/'),
                timeout=self.config.request_timeout,
                trust_env=False,
            )
        return self._client

    def _headers(self) -> Dict[str, str]:
        """Build authentication headers"""
        if not self.config.api_token:
            raise RuntimeError('CLOUDPREPPER_API_TOKEN is not set in environment variables')
        return {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.config.api_token}',
        }

    def _path(self, template: str, job_id: str) -> str:
        return template.format(batch_id=job_id)

    async def _request(self, method: str, path: str, json_body: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, Any]] = None) -> BackendResponse:
        """Send one request and decode the body"""
        headers = self._headers()
        self.logger.debug(f"{method} {path}")
        try:
            response = await self.client.request(method, path, json=json_body, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise TransientTransportError(
                f"Backend did not respond within {self.config.request_timeout:.0f}s "
                f"({method} {self.config.base_url}{path})"
            ) from e
        except httpx.RequestError as e:
            raise TransientTransportError(
                f"Unable to reach backend at {self.config.base_url}{path}: {e}"
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        self.logger.debug(f"{method} {path} -> {response.status_code}")
        return BackendResponse(http_status=response.status_code, body=body)

    async def submit(self, payload: Dict[str, Any]) -> BackendResponse:
        return await self._request('POST', self.config.submit_path, json_body=payload)

    async def status(self, job_id: str) -> BackendResponse:
        return await self._request('GET', self._path(self.config.status_path, job_id))

    async def results(self, job_id: str) -> BackendResponse:
        return await self._request('GET', self._path(self.config.results_path, job_id))

    async def generate(self, payload: Dict[str, Any]) -> BackendResponse:
        return await self._request('POST', self.config.generate_path, json_body=payload)

    async def probe(self, path: str) -> BackendResponse:
        return await self._request('GET', path)

    async def resubmit(self, job_id: str) -> BackendResponse:
        """GET the submission endpoint with batch_id, then POST get_results if GET is rejected"""
        response = await self._request('GET', self.config.submit_path, params={'batch_id': job_id})
        if response.ok:
            return response
        self.logger.info(f"GET re-check returned {response.http_status}, trying POST with batch_id in body")
        return await self._request(
            'POST', self.config.submit_path,
            json_body={'batch_id': job_id, 'action': 'get_results'}
        )

    async def domain_counts(self, certification_type: str) -> BackendResponse:
        return await self._request(
            'GET', self.config.domain_counts_path,
            params={'certification_type': certification_type}
        )

    async def aclose(self):
        """Close the httpx client if this backend created it"""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
