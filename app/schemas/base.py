"""
app.schemas.base
~~~~~~~~~~~~~~~~

对外 JSON 统一使用 camelCase 字段名，内部属性保持 snake_case。
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """序列化用 camelCase，解析时同时接受两种写法。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict:
        """转换为可直接 ``send_json`` / ``JSONResponse`` 的字典。"""
        return self.model_dump(by_alias=True, mode="json")
