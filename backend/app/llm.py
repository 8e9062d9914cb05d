import json
import re
from typing import List, Dict, Any, Optional
from langchain_core.messages import SystemMessage, HumanMessage, AIMessage
from .llm_loader import get_chat_model, LLMConfigError, get_provider_name
import logging

logger = logging.getLogger("uvicorn.error")


class LLMError(RuntimeError):
    pass


def _get_llm(temperature: float = 0.2, max_tokens: Optional[int] = None):
    try:
        return get_chat_model(temperature=temperature, max_tokens=max_tokens)
    except LLMConfigError as exc:
        raise LLMError(str(exc)) from exc


# ---------- response text extraction ----------


def _as_text_from_content(content: Any) -> str:
    """Normalize LC content (str | list[chunk] | dict | AIMessage)."""
    if content is None:
        return ""
    if isinstance(content, AIMessage):
        return _as_text_from_content(content.content)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for p in content:
            if isinstance(p, str):
                parts.append(p)
            elif isinstance(p, dict) and isinstance(p.get("text"), str):
                parts.append(p["text"])
            else:
                parts.append(str(p))
        return "".join(parts)
    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        if isinstance(content.get("content"), str):
            return content["content"]
        return str(content)
    return str(content)


def _as_text_from_response(resp: Any) -> str:
    """
    Providers stash text in different places:
      - resp.content (usual)
      - resp.additional_kwargs.reasoning_content (NVIDIA)
      - resp.additional_kwargs.content
    """
    text = _as_text_from_content(getattr(resp, "content", None))
    if text:
        return text

    extras = getattr(resp, "additional_kwargs", {}) or {}
    if isinstance(extras, dict):
        for key in ("reasoning_content", "content"):
            value = extras.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return ""


# ---------- JSON decoding ----------


def _strip_code_fences(text: str) -> str:
    return re.sub(
        r"^```(?:json)?\s*|\s*```$",
        "",
        text.strip(),
        flags=re.IGNORECASE | re.MULTILINE,
    )


def _first_balanced_json(text: str) -> str:
    start = None
    depth = 0
    for i, ch in enumerate(text):
        if ch in "{[":
            start = i
            depth = 1
            break
    if start is None:
        raise ValueError("no JSON start in response")
    for j in range(start + 1, len(text)):
        if text[j] in "{[":
            depth += 1
        elif text[j] in "}]":
            depth -= 1
            if depth == 0:
                return text[start : j + 1]
    teaser = text[start : start + 400].replace("\n", "\\n")
    raise ValueError(f"unterminated JSON (teaser): {teaser}")


_re_trailing_commas = re.compile(r",(\s*[}\]])")
_re_bare_literals   = re.compile(r"\b(?:None|True|False)\b")


def _try_repair_json(s: str) -> Any:
    t = _re_trailing_commas.sub(r"\1", s)
    t = _re_bare_literals.sub(lambda m: {"None": "null", "True": "true", "False": "false"}[m.group(0)], t)
    return json.loads(t)


def load_json_text(text: str) -> Any:
    """Decode model output that should be JSON: fenced, prefixed with prose, or slightly malformed."""
    txt = _strip_code_fences(text or "")
    if not txt.strip():
        raise ValueError("empty LLM response text")
    try:
        return json.loads(txt)
    except json.JSONDecodeError:
        pass
    block = _first_balanced_json(txt)
    try:
        return json.loads(block)
    except json.JSONDecodeError:
        try:
            return _try_repair_json(block)
        except json.JSONDecodeError as e:
            teaser = block[:400].replace("\n", "\\n")
            raise ValueError(f"json_parse_failed after repair: {e}; teaser={teaser}")


def _coerce_object(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    if isinstance(obj, list):
        for it in obj:
            if isinstance(it, dict):
                return it
        raise LLMError("not_object: array contained no objects")
    raise LLMError(f"not_object: unsupported type {type(obj).__name__}")


# ---------- public API ----------


def chat_json(system_prompt: str, user_message: str, max_tokens: int = 1024) -> dict:
    """One system + user exchange that must come back as a single JSON object."""
    llm = _get_llm(max_tokens=max_tokens)
    messages = [
        SystemMessage(
            system_prompt + "\nReturn ONE JSON object. No prose, no code fences."
        ),
        HumanMessage(user_message),
    ]
    try:
        resp = llm.invoke(messages)
    except Exception as exc:
        raise LLMError(f"{get_provider_name()} request failed: {short_error(exc)}") from exc
    text = _as_text_from_response(resp)
    if not text or not text.strip():
        extras = getattr(resp, "additional_kwargs", None)
        raise LLMError(f"no_content: additional={extras}")
    logger.debug("LLM raw text teaser: %r", text[:200])
    try:
        obj = load_json_text(text)
    except ValueError as exc:
        raise LLMError(str(exc)) from exc
    return _coerce_object(obj)


def short_error(exc: Exception) -> str:
    msg = str(exc)
    if not msg:
        return exc.__class__.__name__
    return msg.replace("\n", " ").strip()[:200]
