"""Gemini Provider 适配器。

本模块负责：

1. 接收统一的 GenerateRequest。
2. 将其转换为 Gemini generateContent 的 HTTP API 请求格式
   （contents / systemInstruction / tools / generationConfig）。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 TurnResponse（含函数调用与 groundingMetadata）。
"""

import httpx
from typing import Any, Dict, List, Optional

from account_planner.domain.models import (
    Candidate,
    ChatUsage,
    Content,
    GenerateRequest,
    GroundingChunk,
    Part,
    TurnResponse,
)
from account_planner.domain.exceptions import NetworkError, ApiError, RateLimitError, ValidationError
from account_planner.providers.registry import GEMINI_CONFIG, ModelConfig, get_model_config
from account_planner.tools.definitions import ToolDef, ToolCall, ToolResult


class GeminiClient:
    """Gemini 提供方客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - generate: 对外统一调用入口，返回 TurnResponse。
    """

    name = "gemini"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings

    def generate(self, req: GenerateRequest) -> TurnResponse:
        """执行一次非流式生成调用。

        步骤：
        1. 读取模型配置（logical model -> provider model）。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并捕获网络错误/限流/服务端错误。
        4. 使用统一的解析函数构造 TurnResponse。
        """

        api_key = getattr(self._settings, "api_key", None)
        if not api_key:
            # 缺少密钥时客户端照常构造，首次调用才报错
            raise ValidationError(code="MISSING_API_KEY", message="API_KEY not set")
        model_cfg = get_model_config(self.name, req.model)
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base}/models/{model_cfg.provider_model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="MALFORMED_RESPONSE", message=f"Response is not JSON: {e}", http_status=502)
        if not isinstance(data, dict):
            raise ApiError(code="MALFORMED_RESPONSE", message="Response is not a JSON object", http_status=502)
        return self._parse_response(data, req)

    def _build_payload(self, req: GenerateRequest, model_cfg: ModelConfig) -> dict:
        """将 GenerateRequest 转成 generateContent 所需的请求 JSON。"""

        payload: Dict[str, Any] = {
            "contents": [self._content_to_payload(c) for c in req.contents],
            "generationConfig": {
                "temperature": req.temperature if req.temperature is not None else model_cfg.default_temperature,
                "topP": req.top_p,
                "maxOutputTokens": req.max_tokens or model_cfg.max_tokens,
            },
        }
        if req.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": req.system_instruction}]}
        tools: List[Dict[str, Any]] = []
        if req.web_search:
            tools.append({"googleSearch": {}})
        if req.tools:
            tools.append({"functionDeclarations": [self._serialize_tool(tool) for tool in req.tools]})
        if tools:
            payload["tools"] = tools
        return payload

    def _parse_response(self, data: dict, req: GenerateRequest) -> TurnResponse:
        """将 Gemini 的原始响应 JSON 解析为统一的 TurnResponse。"""

        raw_candidates = data.get("candidates") or []
        if not isinstance(raw_candidates, list):
            raise ApiError(code="MALFORMED_RESPONSE", message="candidates is not a list", http_status=502)
        candidates: List[Candidate] = []
        for i, ch in enumerate(raw_candidates):
            if not isinstance(ch, dict):
                raise ApiError(code="MALFORMED_RESPONSE", message=f"candidates[{i}] is not an object", http_status=502)
            candidates.append(
                Candidate(
                    index=ch.get("index", i),
                    content=self._build_content(ch.get("content")),
                    grounding_chunks=self._parse_grounding(ch.get("groundingMetadata")),
                    finish_reason=ch.get("finishReason"),
                )
            )
        usage = None
        usage_raw = data.get("usageMetadata") or {}
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("promptTokenCount", 0),
                completion_tokens=usage_raw.get("candidatesTokenCount", 0),
                total_tokens=usage_raw.get("totalTokenCount", 0),
            )
        return TurnResponse(provider=self.name, model=req.model, candidates=candidates, usage=usage, raw=data)

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        """把内部的 ToolDef 转成 Gemini 的 functionDeclaration。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            properties[name] = param.schema or {"type": "STRING"}
            if param.description:
                properties[name] = {
                    **properties[name],
                    "description": param.description,
                }
            if param.required:
                required.append(name)
        return {
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "OBJECT",
                "properties": properties,
                "required": required,
            },
        }

    def _build_content(self, payload: Any) -> Optional[Content]:
        """将单条 content 转换为 Content，缺失 parts 时保留为 None。"""

        if not isinstance(payload, dict):
            return None
        raw_parts = payload.get("parts")
        parts: Optional[List[Part]] = None
        if isinstance(raw_parts, list):
            parts = [self._build_part(p) for p in raw_parts if isinstance(p, dict)]
        return Content(role=payload.get("role") or "model", parts=parts)

    def _build_part(self, payload: Dict[str, Any]) -> Part:
        call = payload.get("functionCall")
        function_call = None
        if isinstance(call, dict):
            function_call = ToolCall(
                name=call.get("name") or "",
                arguments=self._parse_arguments(call.get("args")),
                id=call.get("id"),
            )
        text = payload.get("text")
        return Part(
            text=text if isinstance(text, str) else None,
            function_call=function_call,
            raw=payload,
        )

    @staticmethod
    def _parse_arguments(raw: Any) -> Dict[str, Any]:
        """函数调用参数通常是对象；其他形态保留到 `_raw` 交给工具层校验。"""

        if isinstance(raw, dict):
            return raw
        if raw is None:
            return {}
        return {"_raw": raw}

    @staticmethod
    def _parse_grounding(payload: Any) -> List[GroundingChunk]:
        if not isinstance(payload, dict):
            return []
        chunks: List[GroundingChunk] = []
        for chunk in payload.get("groundingChunks") or []:
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if not isinstance(web, dict):
                chunks.append(GroundingChunk())
                continue
            chunks.append(GroundingChunk(uri=web.get("uri"), title=web.get("title")))
        return chunks

    def _content_to_payload(self, content: Content) -> Dict[str, Any]:
        return {
            "role": content.role,
            "parts": [self._part_to_payload(p) for p in content.parts or []],
        }

    @staticmethod
    def _part_to_payload(part: Part) -> Dict[str, Any]:
        if part.raw is not None:
            return dict(part.raw)
        if part.function_response is not None:
            return {"functionResponse": _function_response_payload(part.function_response)}
        if part.function_call is not None:
            call: Dict[str, Any] = {"name": part.function_call.name, "args": part.function_call.arguments}
            if part.function_call.id:
                call["id"] = part.function_call.id
            return {"functionCall": call}
        return {"text": part.text or ""}


def _function_response_payload(result: ToolResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"name": result.name, "response": result.response}
    if result.call_id:
        payload["id"] = result.call_id
    return payload
