from batchcodes.db.models.base import Base
from batchcodes.db.models.code_batches import CodeBatch
from batchcodes.db.models.code_exports import CodeExport
from batchcodes.db.models.codes import Code

__all__ = [
    "Base",
    "Code",
    "CodeBatch",
    "CodeExport",
]
