"""Record processing components"""

from tablesync.processing.field_transformer import FieldTransformer, transform_record

__all__ = ["FieldTransformer", "transform_record"]
