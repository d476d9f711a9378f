"""
Redis serialization utilities.

Objects stored through the string helpers are kept as JSON text. This module
encodes Python values (including datetime, UUID, Decimal and pydantic models)
and decodes stored text back, optionally validating it into a target type.
"""

import dataclasses
import datetime
import json
import uuid
from decimal import Decimal
from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from wonder_redis.libs.redis.errors import RedisSerializationError

T = TypeVar("T")


class RedisSerializer:
    """
    Serializer for values stored in Redis strings.

    Blank stored values (missing, empty or whitespace-only) decode to None
    rather than raising.
    """

    @staticmethod
    def serialize(value: Any) -> str:
        """
        Serialize a value to a JSON string.

        Args:
            value: Value to serialize

        Returns:
            JSON string representation

        Raises:
            RedisSerializationError: If serialization fails
        """
        try:
            return json.dumps(value, default=RedisSerializer._default_serializer)
        except Exception as e:
            raise RedisSerializationError(f"Failed to serialize data: {str(e)}") from e

    @staticmethod
    def is_blank(data: Optional[Union[str, bytes]]) -> bool:
        return data is None or not data.strip()

    @staticmethod
    def deserialize(data: Optional[Union[str, bytes]]) -> Any:
        """
        Deserialize a JSON string.

        Args:
            data: JSON string or bytes to deserialize

        Returns:
            Decoded Python value, or None for blank input

        Raises:
            RedisSerializationError: If the data is not valid JSON
        """
        if RedisSerializer.is_blank(data):
            return None

        try:
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            return json.loads(data)
        except Exception as e:
            raise RedisSerializationError(f"Failed to deserialize data: {str(e)}") from e

    @staticmethod
    def deserialize_as(data: Optional[Union[str, bytes]], cls: Type[T]) -> Optional[T]:
        """
        Deserialize JSON and validate it as ``cls``.

        Args:
            data: JSON string or bytes
            cls: Target type (pydantic model, dataclass, TypedDict or builtin)

        Returns:
            Validated instance, or None for blank input

        Raises:
            RedisSerializationError: If decoding or validation fails
        """
        decoded = RedisSerializer.deserialize(data)
        if decoded is None:
            return None
        return RedisSerializer._validate(decoded, cls)

    @staticmethod
    def deserialize_list(data: Optional[Union[str, bytes]], cls: Type[T]) -> Optional[List[T]]:
        """
        Deserialize a JSON array and validate every element as ``cls``.

        Returns:
            List of validated items, or None for blank input

        Raises:
            RedisSerializationError: If decoding fails or the value is not a list of ``cls``
        """
        decoded = RedisSerializer.deserialize(data)
        if decoded is None:
            return None
        return RedisSerializer._validate(decoded, List[cls])

    @staticmethod
    def _validate(value: Any, cls: Any) -> Any:
        try:
            return TypeAdapter(cls).validate_python(value)
        except ValidationError as e:
            raise RedisSerializationError(
                f"Stored value does not match {getattr(cls, '__name__', cls)}: {str(e)}"
            ) from e

    @staticmethod
    def _default_serializer(obj: Any) -> Any:
        """
        Handle types json does not know about.

        Raises:
            TypeError: If the object type is not supported
        """
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")

        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)

        if isinstance(obj, (datetime.datetime, datetime.date)):
            return obj.isoformat()

        if isinstance(obj, uuid.UUID):
            return str(obj)

        if isinstance(obj, Decimal):
            return float(obj)

        if isinstance(obj, (set, frozenset)):
            return list(obj)

        if isinstance(obj, bytes):
            return obj.decode("utf-8")

        raise TypeError(f"Type {type(obj).__name__} not serializable")
