"""
Codec for ephemeral records - every value written to the KV store goes through here
"""
import json
from typing import List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, TypeAdapter

M = TypeVar("M", bound=BaseModel)


def dumps(model: BaseModel) -> str:
    return model.model_dump_json()


def loads(model_cls: Type[M], raw: Optional[str]) -> Optional[M]:
    if raw is None:
        return None
    return model_cls.model_validate_json(raw)


def dumps_list(models: Sequence[BaseModel]) -> str:
    return json.dumps([m.model_dump(mode="json") for m in models])


def loads_list(model_cls: Type[M], raw: Optional[str]) -> List[M]:
    if not raw:
        return []
    return TypeAdapter(List[model_cls]).validate_json(raw)
