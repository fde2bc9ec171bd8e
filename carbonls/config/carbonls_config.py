import os
import platform
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Set, Union

import networkx as nx
import tomli

from carbonls.core import get_logger
from carbonls.utils import change_cwd

from .data_model import LspConfig, TopLevelConfig

logger = get_logger(__name__)


class UnsupportedPlatformError(Exception):
    """
    The current platform is not supported. Supported platforms are: Linux, macOS, Windows.
    """


def _global_config_path() -> Path:
    if "XDG_CONFIG_HOME" in os.environ:
        return Path(os.environ["XDG_CONFIG_HOME"]) / "carbonls" / "config.toml"

    system = platform.system()
    if system in {"Linux", "Darwin"}:
        return Path.home() / ".config" / "carbonls" / "config.toml"
    elif system == "Windows":
        return Path(os.environ["LOCALAPPDATA"]) / "carbonls" / "config.toml"
    raise UnsupportedPlatformError(f"Platform `{system}` is not supported.")


def _merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value


def _read(path: Path) -> TopLevelConfig:
    # relative paths are resolved against the directory of the file
    with change_cwd(path.parent), path.open("rb") as f:
        return TopLevelConfig.model_validate(tomli.load(f))


class CarbonLsConfig:
    """
    Server configuration. Options from the global config file are overridden by the project
    local config file, each file is followed by its `subconfigs` in order.
    """

    __local_config_path: Path
    __project_root_path: Path
    __global_config_path: Path
    __loaded_files: Set[Path]
    __config_raw: Dict[str, Any]
    __config: TopLevelConfig

    def __init__(
        self,
        *_,
        local_config_path: Optional[Union[str, Path]] = None,
        project_root_path: Optional[Union[str, Path]] = None,
    ):
        """
        If `project_root_path` is not provided, the current working directory is used.
        If `local_config_path` is not provided, `carbonls.toml` in the project root directory is used.
        """
        self.__global_config_path = _global_config_path()
        self.__project_root_path = Path(
            project_root_path if project_root_path is not None else Path.cwd()
        ).resolve()
        if not self.__project_root_path.is_dir():
            raise ValueError(
                f"Project root path '{self.__project_root_path}' is not a directory."
            )

        if local_config_path is None:
            self.__local_config_path = self.__project_root_path / "carbonls.toml"
        else:
            self.__local_config_path = Path(local_config_path).resolve()

        self.__loaded_files = set()
        self.__config_raw = {}
        self.__config = TopLevelConfig()

    def __str__(self) -> str:
        """
        Returns:
            JSON representation of the config.
        """
        return self.__config.model_dump_json(by_alias=True)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}.fromdict({self.__config_raw!r}, project_root_path={self.__project_root_path!r})"

    @classmethod
    def fromdict(
        cls,
        config_dict: Dict[str, Any],
        *,
        project_root_path: Optional[Union[str, Path]] = None,
    ) -> "CarbonLsConfig":
        """
        Args:
            config_dict: Dictionary containing the config options.
            project_root_path: Path to the project root directory.

        Returns:
            Instance of the `CarbonLsConfig` class with the provided config options.
        """
        instance = cls(project_root_path=project_root_path)
        with change_cwd(instance.project_root_path):
            instance.__config = TopLevelConfig.model_validate(config_dict)
        instance.__config_raw = instance.__config.model_dump(
            by_alias=True, exclude_unset=True
        )
        return instance

    def load_configs(self) -> None:
        """
        Clear any previous config options and load the global config file followed by the
        project local config file.
        """
        self.__loaded_files = set()
        self.__config_raw = {}
        self.__config = TopLevelConfig()

        self.load(self.global_config_path)
        self.load(self.local_config_path)

    def load(self, path: Path) -> None:
        """
        Load config from the provided file path and its subconfigs. Already loaded options are
        overridden. Nothing changes if the file or any of its subconfigs is invalid.

        Raises:
            ValueError: The subconfigs include each other.
            pydantic.ValidationError: A file contains invalid options.
        """
        includes = nx.DiGraph()
        merged = deepcopy(self.__config_raw)
        self.__include(includes, None, path.resolve(), merged)

        self.__config = TopLevelConfig.model_validate(merged)
        self.__config_raw = merged
        self.__loaded_files.update(includes.nodes)

    def __include(
        self,
        includes: nx.DiGraph,
        parent: Optional[Path],
        path: Path,
        merged: Dict[str, Any],
    ) -> None:
        if includes.has_node(path):
            assert parent is not None
            includes.add_edge(parent, path)
            try:
                cycle = nx.find_cycle(includes, path)
            except nx.NetworkXNoCycle:
                # already merged through another parent
                return
            chain = [str(u) for u, _ in cycle] + [str(cycle[0][0])]
            raise ValueError("Found cyclic config subconfigs: " + " -> ".join(chain))

        if not path.is_file():
            if parent is None:
                logger.info(f"Config file '{path}' does not exist.")
            else:
                logger.warning(f"Config file '{path}' loaded from '{parent}' does not exist.")
            return

        parsed = _read(path)
        includes.add_node(path)
        if parent is not None:
            includes.add_edge(parent, path)
        _merge(merged, parsed.model_dump(by_alias=True, exclude_unset=True))

        for subconfig in parsed.subconfigs:
            self.__include(includes, path, subconfig, merged)

    @property
    def loaded_files(self) -> FrozenSet[Path]:
        """
        Returns:
            Set of paths to the config files loaded so far.
        """
        return frozenset(self.__loaded_files)

    @property
    def global_config_path(self) -> Path:
        return self.__global_config_path

    @property
    def local_config_path(self) -> Path:
        return self.__local_config_path

    @property
    def project_root_path(self) -> Path:
        return self.__project_root_path

    @property
    def lsp(self) -> LspConfig:
        """
        Returns:
            LSP config options.
        """
        return self.__config.lsp
