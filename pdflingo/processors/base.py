# pdflingo/processors/base.py
"""
Abstract base class for file processors.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from pdflingo.models.types import FileInfo, PageElement, RebuildResult


class FileProcessor(ABC):
    """
    Abstract base class for file processors.
    Each document format implements this interface.
    """

    @abstractmethod
    def get_file_info(self, file_path: Path) -> FileInfo:
        """
        Get file metadata for display.

        Args:
            file_path: Path to the file

        Returns:
            FileInfo with file metadata
        """
        pass

    @abstractmethod
    def extract_elements(self, file_path: Path) -> list[PageElement]:
        """
        Extract the page elements of a document.

        Args:
            file_path: Path to the file

        Returns:
            Elements of every page, grouped and ordered by page
        """
        pass

    @abstractmethod
    def apply_translations(
        self,
        input_path: Path,
        output_path: Path,
        elements: list[PageElement],
    ) -> RebuildResult:
        """
        Write a new document from (translated) elements.

        Args:
            input_path: Path to original file
            output_path: Path for translated file
            elements: Elements returned by extract_elements, with
                      translated_text filled in where available

        Returns:
            RebuildResult with drawing statistics and failed pages
        """
        pass
