from __future__ import annotations
import logging
from dataclasses import dataclass
import httpx
from typing import Any, Dict, Optional
from .settings import settings


logger = logging.getLogger(__name__)


@dataclass
class Generation:
	text: str
	model: str
	input_tokens: int = 0
	output_tokens: int = 0
	provider: str = "gemini"


def _as_int(value: Any) -> int:
	try:
		return max(0, int(value))
	except (TypeError, ValueError):
		return 0


def _gemini_usage(data: Dict[str, Any]) -> tuple[int, int]:
	usage = data.get("usageMetadata") or {}
	# Thinking tokens are billed as output
	output = _as_int(usage.get("candidatesTokenCount")) + _as_int(usage.get("thoughtsTokenCount"))
	return _as_int(usage.get("promptTokenCount")), output


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		# Vertex takes the API key via header, AI Studio via query string
		self._auth_in_query = self.provider != "vertex"
		self._base_url_override = base_url
		self.base_url = self._endpoint(self.model)
		timeout = settings.gemini_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=timeout, transport=transport)

	def _endpoint(self, model: str) -> str:
		if self._base_url_override:
			return self._base_url_override
		if not self._auth_in_query:
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			return f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{model}:generateContent"
		return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

	async def generate(
		self,
		prompt: str,
		*,
		model: Optional[str] = None,
		thinking_budget: Optional[int] = None,
	) -> Generation:
		"""Generate text for ``prompt``.

		``model`` overrides the client's default model for this call only.
		"""
		model = model or self.model
		url = self._endpoint(model)
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if thinking_budget is not None:
			payload["thinkingConfig"] = {"budgetTokens": _as_int(thinking_budget)}
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			if thinking_budget is not None:
				# Some models reject thinkingConfig; retry once without it
				fallback_payload = dict(payload)
				fallback_payload.pop("thinkingConfig", None)
				try:
					r = await self._client.post(url, params=params, headers=headers, json=fallback_payload)
					r.raise_for_status()
				except (httpx.HTTPStatusError, httpx.RequestError) as err:
					last_error = err
			else:
				last_error = http_err
		except httpx.RequestError as net_err:
			last_error = net_err
		if last_error is None:
			try:
				data = r.json()
				text = data["candidates"][0]["content"]["parts"][0]["text"]
			except (ValueError, KeyError, IndexError, TypeError):
				last_error = RuntimeError(f"Unexpected Gemini response: {r.text}")
			else:
				input_tokens, output_tokens = _gemini_usage(data)
				return Generation(
					text=text,
					model=data.get("modelVersion") or model,
					input_tokens=input_tokens,
					output_tokens=output_tokens,
				)
		logger.warning("Gemini call failed: %s", last_error)
		if not self._fallback_enabled:
			raise last_error or RuntimeError("Gemini call failed and no fallback configured")
		return await self._fallback_generate(prompt, last_error)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, primary_error: Optional[Exception]) -> Generation:
		if not self._fallback_client or not self._openrouter_api_key:
			raise primary_error or RuntimeError("Fallback requested but OpenRouter is not configured")
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			text = data["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			if primary_error is not None:
				raise RuntimeError(
					f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
				) from fallback_err
			raise fallback_err
		usage = data.get("usage") or {}
		return Generation(
			text=text,
			model=data.get("model") or self._openrouter_model,
			input_tokens=_as_int(usage.get("prompt_tokens")),
			output_tokens=_as_int(usage.get("completion_tokens")),
			provider="openrouter",
		)
