import json
import re
from typing import Any, Iterable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from models.search_models import AnalysisResult
from utils.size_parser import parse_size

MAGNET_RE = re.compile(r"^magnet:\?\S*xt=urn:[a-z0-9]+:[a-z0-9]+", re.IGNORECASE)
_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")


class ResultRecord(BaseModel):
    """Fields of one search result, from a JSON API item or an AI extraction."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1)
    magnet_link: str = Field(..., validation_alias=AliasChoices("magnet_link", "magnetLink", "magnet"))
    size_bytes: int | None = Field(
        None, validation_alias=AliasChoices("size_bytes", "sizeBytes", "size")
    )
    source_url: str | None = Field(
        None, validation_alias=AliasChoices("source_url", "sourceUrl", "url")
    )

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        return " ".join(str(value).split()) if value is not None else value

    @field_validator("magnet_link", mode="before")
    @classmethod
    def _check_magnet(cls, value: Any) -> Any:
        if not isinstance(value, str) or not MAGNET_RE.match(value.strip()):
            raise ValueError("magnet_link must be a magnet URI with an xt parameter")
        return value.strip()

    @field_validator("size_bytes", mode="before")
    @classmethod
    def _parse_size(cls, value: Any) -> Any:
        return parse_size(value)

    @field_validator("source_url", mode="before")
    @classmethod
    def _blank_url(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            return None
        return str(value).strip()


class AnalysisEntry(BaseModel):
    """One item of an analysis response."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("id", "item_id", "itemId"))
    cleaned_title: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("cleaned_title", "cleanedTitle")
    )
    tags: list[str] = Field(default_factory=list)
    purity_score: int = Field(
        ..., ge=0, le=100, validation_alias=AliasChoices("purity_score", "purityScore", "purity")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part for part in value.split(",")]
        return value

    @field_validator("purity_score", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("purity_score must be a number")
        return value

    def to_analysis(self) -> AnalysisResult:
        return AnalysisResult(
            cleaned_title=self.cleaned_title.strip(),
            tags=frozenset(self.tags),
            purity_score=self.purity_score,
        )


class ResponseValidator:
    """Parses and validates the JSON the AI capability sends back."""

    def parse_json(self, text: str) -> Any:
        """
        Decode a model reply as JSON.

        Tolerates markdown code fences and leading/trailing chatter around a
        single JSON object or array.

        Raises:
            ValueError: If no JSON document can be recovered
        """
        if text is None or not text.strip():
            raise ValueError("empty response")
        if self._looks_like_refusal(text):
            raise ValueError("model refused the request")

        cleaned = _FENCE_RE.sub("", text.strip()).strip()
        try:
            return json.loads(cleaned)
        except json.JSONDecodeError:
            pass

        for opener, closer in (("{", "}"), ("[", "]")):
            start = cleaned.find(opener)
            end = cleaned.rfind(closer)
            if start != -1 and end > start:
                try:
                    return json.loads(cleaned[start : end + 1])
                except json.JSONDecodeError:
                    continue
        raise ValueError("response is not valid JSON")

    def validate_record(self, data: Any) -> ResultRecord:
        """
        Raises:
            ValueError: When ``data`` is not a usable result record
        """
        if isinstance(data, list) and len(data) == 1:
            data = data[0]
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        try:
            return ResultRecord.model_validate(data)
        except ValidationError as exc:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
            raise ValueError(f"invalid fields: {', '.join(fields)}") from exc

    def validate_analysis(
        self, data: Any, allowed_ids: Iterable[str]
    ) -> tuple[dict[str, AnalysisResult], list[dict[str, Any]]]:
        """
        Map analysis entries back to item ids.

        Returns:
            (results by id, rejected entries with a reason). Entries that
            reference unknown ids or carry an out-of-range score are rejected
            individually; the first valid entry per id wins.

        Raises:
            ValueError: When the document does not contain an entry list
        """
        if isinstance(data, dict):
            for key in ("results", "items", "analysis"):
                if isinstance(data.get(key), list):
                    data = data[key]
                    break
        if not isinstance(data, list):
            raise ValueError("expected a list of analysis entries")

        allowed = set(allowed_ids)
        accepted: dict[str, AnalysisResult] = {}
        rejected: list[dict[str, Any]] = []
        for raw_entry in data:
            try:
                entry = AnalysisEntry.model_validate(raw_entry)
            except ValidationError as exc:
                rejected.append({"entry": raw_entry, "reason": exc.errors()[0]["msg"]})
                continue
            if entry.id not in allowed:
                rejected.append({"entry": raw_entry, "reason": "unknown id"})
                continue
            if entry.id in accepted:
                continue
            accepted[entry.id] = entry.to_analysis()
        return accepted, rejected

    def _looks_like_refusal(self, text: str) -> bool:
        text_lower = text.lower()
        if text_lower.lstrip().startswith(("{", "[", "```")):
            return False
        refusal_phrases = [
            "i'm sorry, but i can't assist",
            "i am sorry, but i can't assist",
            "i'm sorry, but i cannot assist",
            "i can't assist with",
            "i cannot assist with",
            "i can't help with",
            "i cannot help with",
        ]
        if any(phrase in text_lower for phrase in refusal_phrases):
            return True

        return bool(
            re.search(
                r"\b(can(?:not|'t)|unable to|won't)\b.{0,40}\b(assist|help|comply)\b",
                text_lower,
                re.I | re.S,
            )
        )
