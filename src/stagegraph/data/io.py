import tempfile, yaml, json, os
from typing import Union, Dict, Any
from pathlib import Path
from stagegraph.recovery import FileOperationError, FatalError, CorruptionError
from stagegraph.logs import get_logger

log = get_logger("data.io")

DATA_YAML = 0
DATA_JSON = 1

YAML_SUFFIXES = ('.yml', '.yaml')

def data_format_for(file_path: Union[Path, str]) -> int:
    """Pick the serialization format from the file suffix; JSON unless it is .yml/.yaml."""
    if Path(file_path).suffix.lower() in YAML_SUFFIXES:
        return DATA_YAML
    return DATA_JSON

def _cleanup(temp_path):
    if temp_path is None or not os.path.exists(temp_path):
        return
    try:
        os.unlink(temp_path)
        log.debug(f"Cleaned up temporary file: {temp_path}")
    except OSError as cleanup_error:
        # Don't raise while handling another error, just log
        log.warning(f"Could not clean up temp file {temp_path}: {cleanup_error}")

def _create_dirs(file_path : Path):
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except (OSError, PermissionError) as e:
        error_msg = f"Cannot create directory {file_path.parent}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def atomic_write(data_type : int, file_path : Union[Path, str], data : Dict[str, Any], create_dirs : bool = False) -> bool:
    """
    Serialize and save data to a YAML or JSON file using atomic updates.

    The data is written to a temporary file next to the target, flushed to disk
    and then moved over the target with ``os.replace``, so readers see either
    the old file or the new one.

    Raises:
        FatalError: if the data cannot be serialized
        FileOperationError: on I/O errors
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        if create_dirs:
            _create_dirs(file_path)

        with tempfile.NamedTemporaryFile(mode='w', encoding='utf-8', dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp', delete=False) as temp_file:
            temp_path = temp_file.name
            if data_type == DATA_YAML:
                yaml.safe_dump(data, temp_file, default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)
            elif data_type == DATA_JSON:
                json.dump(data, temp_file, indent=2, ensure_ascii=False)
            else:
                raise FatalError("Unsupported Data Format")
            temp_file.flush()
            os.fsync(temp_file.fileno())

        os.replace(temp_path, file_path)
        log.debug(f"Successfully saved data file: {file_path}")
        return True

    except FileOperationError:
        raise

    except (yaml.YAMLError, TypeError, ValueError) as e:
        _cleanup(temp_path)
        error_msg = (f"Data serialization failed for {file_path}. "
                    f"In-memory data may be corrupt or contain non-serializable types: {e}")
        log.critical(error_msg)
        raise FatalError(error_msg) from e

    except (IOError, OSError, PermissionError) as e:
        _cleanup(temp_path)
        error_msg = f"I/O error saving data file {file_path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

    except FatalError:
        _cleanup(temp_path)
        raise

def read_document(file_path : Union[Path, str]) -> Union[None, Dict[str, Any]]:
    """
    Load and parse a YAML or JSON data file.

    Args:
        file_path: Path to the data file; the suffix selects the parser

    Returns:
        Parsed data as dict, or None if the file doesn't exist

    Raises:
        CorruptionError: on syntax errors or a top level that is not a mapping
        FileOperationError: on I/O errors
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            if data_format_for(file_path) == DATA_YAML:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

    except (json.JSONDecodeError, yaml.YAMLError) as e:
        # Syntax errors mean a corrupted file
        raise CorruptionError(f"Syntax error in {file_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise CorruptionError(f"File {file_path} is not valid UTF-8: {e}") from e
    except (IOError, OSError, PermissionError) as e:
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CorruptionError(f"File {file_path} contains invalid data structure")
    return data
