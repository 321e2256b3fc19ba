"""Appends the client reload scripts to built extension bundles."""

import logging
import re
from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

from extreload.domain import ReloaderOptions

logger = logging.getLogger(__name__)

BLOCK_BEGIN = "/* extreload:begin */"
BLOCK_END = "/* extreload:end */"
URL_PLACEHOLDER = "__EXTRELOAD_URL__"

SCRIPTS_PACKAGE = "extreload.client.scripts"
BACKGROUND_SCRIPT = "background.js"
CONTENT_SCRIPT = "content.js"

_BLOCK_RE = re.compile(
    r"\n?" + re.escape(BLOCK_BEGIN) + r".*?" + re.escape(BLOCK_END),
    re.DOTALL,
)


def strip_injected(text: str) -> str:
    """Remove every previously injected block from a bundle."""
    return _BLOCK_RE.sub("", text)


@dataclass
class Chunk:
    """A named build output bundle and the files it was written to."""

    name: str
    files: list[str] = field(default_factory=list)


class ScriptInjector:
    """Adds the agent scripts to the background and content bundles.

    Only the first file of a matching chunk receives the script. The script
    is wrapped in begin/end markers, and an existing block is replaced
    rather than appended again, so injecting twice leaves one copy.
    ``__EXTRELOAD_URL__`` in a script is replaced by the server URL.
    """

    def __init__(
        self,
        background_source: str,
        content_source: str,
        options: ReloaderOptions | None = None,
    ):
        self.background_source = background_source
        self.content_source = content_source
        self.options = options or ReloaderOptions()

    @classmethod
    def from_files(
        cls,
        background_path: Path,
        content_path: Path,
        options: ReloaderOptions | None = None,
    ) -> "ScriptInjector":
        return cls(
            background_path.read_text(encoding="utf-8"),
            content_path.read_text(encoding="utf-8"),
            options,
        )

    @classmethod
    def bundled(cls, options: ReloaderOptions | None = None) -> "ScriptInjector":
        """Injector for the browser agent scripts shipped with the package."""
        scripts = resources.files(SCRIPTS_PACKAGE)
        return cls(
            scripts.joinpath(BACKGROUND_SCRIPT).read_text(encoding="utf-8"),
            scripts.joinpath(CONTENT_SCRIPT).read_text(encoding="utf-8"),
            options,
        )

    def _source_for(self, chunk_name: str) -> str | None:
        if chunk_name == self.options.background_script_name:
            return self.background_source
        if chunk_name == self.options.content_script_name:
            return self.content_source
        return None

    def render(self, source: str) -> str:
        """Wrap a script in markers with the server URL filled in."""
        body = source.replace(URL_PLACEHOLDER, self.options.url)
        return f"{BLOCK_BEGIN}\n{body}\n{BLOCK_END}"

    def inject(
        self,
        chunks: Iterable[Chunk],
        assets: MutableMapping[str, str],
    ) -> list[str]:
        """Append scripts to the assets of matching chunks, in place.

        Args:
            chunks: Bundles produced by the build.
            assets: File name -> source text for every emitted file.

        Returns:
            Names of the files that were modified.
        """
        modified: list[str] = []

        for chunk in chunks:
            source = self._source_for(chunk.name)
            if source is None or not chunk.files:
                continue

            target = chunk.files[0]
            original = strip_injected(assets.get(target, ""))
            assets[target] = f"{original}\n{self.render(source)}"
            modified.append(target)
            logger.debug(f"Injected reload script into {target} ({chunk.name})")

        return modified

    def inject_directory(self, output_dir: Path, extension: str = ".js") -> list[str]:
        """Inject into ``<name><extension>`` files of a build output directory.

        Files that already carry the current scripts are not rewritten.
        """
        chunks = []
        assets: dict[str, str] = {}

        for name in (self.options.background_script_name, self.options.content_script_name):
            path = output_dir / f"{name}{extension}"
            if not path.is_file():
                logger.warning(f"No bundle named {path.name} in {output_dir}")
                continue
            chunks.append(Chunk(name=name, files=[path.name]))
            assets[path.name] = path.read_text(encoding="utf-8")

        before = dict(assets)
        modified = self.inject(chunks, assets)
        for file_name in modified:
            if assets[file_name] == before[file_name]:
                logger.debug(f"{file_name} already carries the reload script")
                continue
            (output_dir / file_name).write_text(assets[file_name], encoding="utf-8")

        return modified
