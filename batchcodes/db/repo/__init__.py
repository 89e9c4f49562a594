from batchcodes.db.repo.batches_repo import BatchesRepo
from batchcodes.db.repo.code_exports_repo import CodeExportsRepo
from batchcodes.db.repo.codes_repo import CodesRepo

__all__ = ["BatchesRepo", "CodeExportsRepo", "CodesRepo"]
