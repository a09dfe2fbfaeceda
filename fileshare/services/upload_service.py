import posixpath
from typing import Iterable

from fileshare.errors import FileShareError
from fileshare.models import UploadBatchResult, UploadedFile, UploadFailure, UploadItem
from fileshare.services.file_repository import LocalFileRepository


class UploadService:
    """Persists a batch of uploaded items, one at a time.

    A failing item never stops the batch. Each item's content is closed exactly
    once, whatever happens to it. When nothing succeeds the first failure is
    reported as the batch error.
    """

    def __init__(self, repository: LocalFileRepository):
        self.repository = repository

    async def execute(self, items: Iterable[UploadItem]) -> UploadBatchResult:
        result = UploadBatchResult()

        for item in items:
            try:
                if not item.name:
                    continue
                try:
                    result.successes.append(await self._store(item))
                except FileShareError as exc:
                    result.failures.append(UploadFailure(name=item.name, error=exc))
            finally:
                await item.content.close()

        if result.failures and not result.successes:
            result.error = result.failures[0].error
        return result

    async def _store(self, item: UploadItem) -> UploadedFile:
        destination = self.repository.resolve(item.name)
        name = self.repository.relative_name(destination)

        await self.repository.create_directory(posixpath.dirname(name))
        written = await self.repository.write_file(name, item.content)
        return UploadedFile(name=name, size=written)
