import os
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Annotated, Any, Callable, Optional

from omegaconf import OmegaConf
from pydantic import BaseModel, ConfigDict, Field, field_validator

from arrowfolder.exceptions import ConfigError


class SampleReadErrorPolicy(Enum):
    SKIP = "skip"
    FAIL = "fail"


class ConversionConfig(BaseModel):
    """Settings of one conversion run.

    Args:
        dataset_name (str): Name recorded in the dataset descriptor.
        train_path (Path): Root of the mandatory training split (`<train_path>/<label>/<file>`).
        validation_path (Optional[Path]): Root of the optional validation split.
        output_path (Path): Directory receiving the split directories and the metadata documents.
        chunk_size (int): Maximum number of samples per shard.
        thread_count (int): Maximum number of chunks converted concurrently.
        image_extension (str): File extension (without dot, case-sensitive) of the images to collect.
        shuffle (bool): Whether the sample index is shuffled before chunking.
        seed (Optional[int]): Seed for the shuffle. None draws fresh entropy from the OS.
        sample_read_error_policy (SampleReadErrorPolicy): What to do with unreadable images.
    """

    model_config = ConfigDict(frozen=True)

    dataset_name: str = "imagefolder"
    train_path: Path
    validation_path: Optional[Path] = None
    output_path: Path
    chunk_size: Annotated[int, Field(strict=True, gt=0)] = 49152
    thread_count: Annotated[int, Field(strict=True, gt=0)] = 8
    image_extension: str = "webp"
    shuffle: bool = True
    seed: Optional[int] = None
    sample_read_error_policy: SampleReadErrorPolicy = SampleReadErrorPolicy.SKIP

    @field_validator("image_extension")
    @classmethod
    def strip_leading_dot(cls, image_extension: str) -> str:
        image_extension = image_extension.lstrip(".")
        if not image_extension:
            raise ValueError("image_extension must not be empty.")
        return image_extension

    def to_state_dict(self) -> dict[str, Any]:
        return {
            "chunk_size": self.chunk_size,
            "thread_count": self.thread_count,
            "image_extension": self.image_extension,
            "shuffle": self.shuffle,
            "seed": self.seed,
            "sample_read_error_policy": self.sample_read_error_policy.value,
        }


def load_app_config_dict(
    config_file_path: Path,
    additional_resolver_funs: Optional[dict[str, Callable]] = None,
) -> dict:
    """Load the conversion configuration from the given YAML file.
    Besides OmegaConf's built-in resolvers (e.g. `${oc.env:DATA_ROOT}`), the function registers
    `${node_env:num_cpus}` and `${arrowfolder_env:config_file_path}`.

    Args:
        config_file_path (Path): YAML config file.
        additional_resolver_funs (dict[str, Callable], optional): Additional resolver functions. Defaults to None.

    Returns:
        dict: Dictionary representation of the config file.
    """

    def arrowfolder_env_resolver_fun(var_name: str, kwargs: dict[str, Any]) -> str | Path:
        if var_name in kwargs:
            return kwargs[var_name]
        else:
            raise ValueError(f"Unknown arrowfolder_env variable: {var_name}.")

    def node_env_resolver_fun(var_name: str) -> int:
        if var_name == "num_cpus":
            return os.cpu_count()
        raise ValueError(f"Unknown node_env variable: {var_name}.")

    arrowfolder_env_kwargs = {"config_file_path": str(config_file_path)}
    OmegaConf.register_new_resolver(
        "arrowfolder_env", partial(arrowfolder_env_resolver_fun, kwargs=arrowfolder_env_kwargs), replace=True
    )
    OmegaConf.register_new_resolver("node_env", node_env_resolver_fun, replace=True)

    if additional_resolver_funs is not None:
        for resolver_name, resolver_fun in additional_resolver_funs.items():
            OmegaConf.register_new_resolver(resolver_name, resolver_fun, replace=True)

    cfg = OmegaConf.load(config_file_path)
    config_dict = OmegaConf.to_container(cfg, resolve=True)

    return config_dict


def load_conversion_config(config_file_path: Path) -> ConversionConfig:
    config_dict = load_app_config_dict(config_file_path)
    if not isinstance(config_dict, dict):
        raise ConfigError(f"Expected a mapping at the top level of {config_file_path}.")
    return ConversionConfig.model_validate(config_dict)
