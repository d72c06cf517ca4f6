"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

Zip-archive persistence for networks.

An archive holds:
- ``meta.json``: the network topology and learning rate, plus the names of
  the per-layer matrix entries
- ``{i}w.bin`` / ``{i}b.bin``: weights and biases of layer ``i`` in the
  dense binary matrix encoding below

The matrix encoding is a 40-byte little-endian header (version, form,
packing, uplo, unit flag, rows, cols, ku, kl) followed by the entries as
row-major float64 values. It matches the gonum ``mat.Dense`` binary format,
so archives written by either side load on the other.
"""

import os
import json
import stat
import struct
import logging
import tempfile
import zipfile
import zlib
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List

import numpy as np

from .errors import FormatError
from .layer import Layer
from .matrix import Matrix
from .network import Network

# Configure module logger
logger = logging.getLogger(__name__)

META_ENTRY = 'meta.json'

MATRIX_VERSION = 1
_HEADER = struct.Struct('<IBBB?qqqq')
_FLOAT = np.dtype('<f8')
_DENSE = (ord('G'), ord('F'), ord('A'), False)


def weight_entry(index: int) -> str:
    return f"{index}w.bin"


def bias_entry(index: int) -> str:
    return f"{index}b.bin"


class NetworkEncoder(json.JSONEncoder):
    """JSON encoder that understands numpy scalars and arrays."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        return super().default(obj)


@dataclass
class NetworkOptions:
    """
    Flat description of a saved network, stored as ``meta.json``.

    The JSON keys (``I``, ``O``, ``H``, ``Learn``, ``WPaths``, ``BPaths``)
    are part of the archive format and must not change.
    """

    input_size: int
    output_size: int
    hidden_sizes: List[int] = field(default_factory=list)
    learning_rate: float = 0.0
    weight_paths: List[str] = field(default_factory=list)
    bias_paths: List[str] = field(default_factory=list)

    @classmethod
    def from_network(cls, network: Network) -> 'NetworkOptions':
        count = len(network.layers)
        return cls(
            input_size=network.input_size,
            output_size=network.output_size,
            hidden_sizes=list(network.hidden_sizes),
            learning_rate=network.learning_rate,
            weight_paths=[weight_entry(i) for i in range(count)],
            bias_paths=[bias_entry(i) for i in range(count)]
        )

    def to_json(self) -> str:
        return json.dumps({
            'I': self.input_size,
            'O': self.output_size,
            'H': self.hidden_sizes,
            'Learn': self.learning_rate,
            'WPaths': self.weight_paths,
            'BPaths': self.bias_paths
        }, cls=NetworkEncoder)

    @classmethod
    def from_json(cls, text: str) -> 'NetworkOptions':
        """
        Parse and validate a ``meta.json`` document.

        Raises:
            FormatError: If the document is not valid metadata
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise FormatError(f"{META_ENTRY} is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise FormatError(f"{META_ENTRY} must hold an object")

        missing = [k for k in ('I', 'O', 'Learn', 'WPaths', 'BPaths') if k not in raw]
        if missing:
            raise FormatError(f"{META_ENTRY} is missing fields {missing}")

        hidden = raw.get('H')
        if hidden is None:
            hidden = []
        if not isinstance(hidden, list):
            raise FormatError(f"{META_ENTRY} field H must be a list of layer sizes")
        ints = [raw['I'], raw['O']] + hidden
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in ints):
            raise FormatError(f"{META_ENTRY} has non-integer layer sizes")
        if not isinstance(raw['Learn'], (int, float)) or isinstance(raw['Learn'], bool):
            raise FormatError(f"{META_ENTRY} has a non-numeric learning rate")

        count = len(hidden) + 1
        for key in ('WPaths', 'BPaths'):
            paths = raw[key]
            if (not isinstance(paths, list) or len(paths) != count
                    or not all(isinstance(p, str) for p in paths)):
                raise FormatError(
                    f"{META_ENTRY} field {key} must list {count} entry names"
                )

        return cls(
            input_size=raw['I'],
            output_size=raw['O'],
            hidden_sizes=list(hidden),
            learning_rate=float(raw['Learn']),
            weight_paths=list(raw['WPaths']),
            bias_paths=list(raw['BPaths'])
        )

    @property
    def weights_shape(self) -> List[List[int]]:
        sizes = [self.input_size] + self.hidden_sizes + [self.output_size]
        return [[sizes[i + 1], sizes[i]] for i in range(len(sizes) - 1)]

    @property
    def biases_shape(self) -> List[List[int]]:
        return [[rows, 1] for rows, _ in self.weights_shape]


def encode_matrix(m: Matrix) -> bytes:
    """
    Encode a 2-D matrix in the dense binary format.

    Raises:
        ValueError: If ``m`` is not a non-empty 2-D array
    """
    m = np.asarray(m)
    if m.ndim != 2 or m.size == 0:
        raise ValueError(f"Cannot encode matrix of shape {m.shape}")
    rows, cols = m.shape
    header = _HEADER.pack(MATRIX_VERSION, *_DENSE, rows, cols, 0, 0)
    return header + np.ascontiguousarray(m, dtype=_FLOAT).tobytes()


def decode_matrix(data: bytes) -> Matrix:
    """
    Decode a matrix written by :func:`encode_matrix`.

    Raises:
        FormatError: On a bad header or a payload of the wrong size
    """
    if len(data) < _HEADER.size:
        raise FormatError(
            f"Matrix blob of {len(data)} bytes is shorter than its header"
        )

    version, form, packing, uplo, unit, rows, cols, ku, kl = _HEADER.unpack_from(data)
    if version != MATRIX_VERSION:
        raise FormatError(f"Unsupported matrix encoding version {version}")
    if (form, packing, uplo, unit) != _DENSE or ku or kl:
        raise FormatError("Matrix blob does not hold a dense matrix")
    if rows <= 0 or cols <= 0:
        raise FormatError(f"Invalid matrix dimensions {rows}x{cols}")

    expected = _HEADER.size + rows * cols * _FLOAT.itemsize
    if len(data) != expected:
        raise FormatError(
            f"Matrix blob of {len(data)} bytes does not match "
            f"{rows}x{cols} (expected {expected})"
        )

    values = np.frombuffer(data, dtype=_FLOAT, offset=_HEADER.size)
    return values.astype(np.float64).reshape(rows, cols)


class NetworkArchive:
    """
    Reads and writes one network archive file.

    Saving goes through a temporary file in the same directory that
    replaces the target only once it is complete.
    """

    def __init__(self, path: str):
        self.path = os.fspath(path)

    def _ensure_directory(self) -> None:
        """Create the archive directory if it doesn't exist."""
        archive_dir = os.path.dirname(self.path)
        if archive_dir and not os.path.exists(archive_dir):
            os.makedirs(archive_dir)

    def _target_mode(self) -> int:
        """Mode for the saved file: the current archive's, else 0666 minus umask."""
        if os.path.exists(self.path):
            return stat.S_IMODE(os.stat(self.path).st_mode)
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask

    @contextmanager
    def _open(self) -> Generator[zipfile.ZipFile, None, None]:
        """
        Context manager for reading the archive.

        Yields:
            zipfile.ZipFile: The open archive

        Raises:
            FileNotFoundError: If the archive does not exist
            FormatError: If the file is not a zip archive
        """
        try:
            archive = zipfile.ZipFile(self.path, 'r')
        except zipfile.BadZipFile as e:
            raise FormatError(f"{self.path} is not a network archive: {e}") from e
        try:
            yield archive
        finally:
            archive.close()

    @staticmethod
    def _read_entry(archive: zipfile.ZipFile, name: str) -> bytes:
        try:
            return archive.read(name)
        except KeyError as e:
            raise FormatError(f"Archive is missing entry '{name}'") from e
        except (zipfile.BadZipFile, zlib.error) as e:
            raise FormatError(f"Archive entry '{name}' is corrupt: {e}") from e

    def save(self, network: Network) -> None:
        """
        Write ``network`` to the archive, replacing any previous file.

        Raises:
            OSError: If the file cannot be written
        """
        self._ensure_directory()
        opts = NetworkOptions.from_network(network)

        fd, tmp_path = tempfile.mkstemp(
            prefix='.ffnet-', suffix='.tmp',
            dir=os.path.dirname(self.path) or '.'
        )
        try:
            with os.fdopen(fd, 'wb') as f:
                with zipfile.ZipFile(f, 'w', compression=zipfile.ZIP_DEFLATED) as zipper:
                    zipper.writestr(META_ENTRY, opts.to_json().encode('utf-8'))
                    for layer, w_path, b_path in zip(
                            network.layers, opts.weight_paths, opts.bias_paths):
                        zipper.writestr(w_path, encode_matrix(layer.weights))
                        zipper.writestr(b_path, encode_matrix(layer.biases))
            os.chmod(tmp_path, self._target_mode())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(
            f"Saved network {network.sizes} to '{self.path}' "
            f"({len(network.layers)} layers)"
        )

    def read_options(self) -> NetworkOptions:
        """Read only the metadata entry."""
        with self._open() as archive:
            meta = self._read_entry(archive, META_ENTRY)
        try:
            text = meta.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FormatError(f"{META_ENTRY} is not UTF-8: {e}") from e
        return NetworkOptions.from_json(text)

    def load(self) -> Network:
        """
        Rebuild the saved network.

        Returns:
            Network: A new network holding the stored parameters

        Raises:
            FileNotFoundError: If the archive does not exist
            FormatError: If metadata or any matrix entry is missing or
                disagrees with the stored topology
        """
        with self._open() as archive:
            meta = self._read_entry(archive, META_ENTRY)
            try:
                opts = NetworkOptions.from_json(meta.decode('utf-8'))
            except UnicodeDecodeError as e:
                raise FormatError(f"{META_ENTRY} is not UTF-8: {e}") from e

            try:
                network = Network(
                    opts.input_size,
                    opts.output_size,
                    opts.hidden_sizes,
                    opts.learning_rate,
                    randomize=False
                )
            except ValueError as e:
                raise FormatError(f"Invalid topology in {META_ENTRY}: {e}") from e

            for i, layer in enumerate(network.layers):
                weights = decode_matrix(self._read_entry(archive, opts.weight_paths[i]))
                biases = decode_matrix(self._read_entry(archive, opts.bias_paths[i]))
                self._check_shape(opts.weight_paths[i], weights, layer.weights.shape)
                self._check_shape(opts.bias_paths[i], biases, layer.biases.shape)
                network.layers[i] = Layer(weights, biases)

        logger.info(f"Loaded network {network.sizes} from '{self.path}'")
        return network

    @staticmethod
    def _check_shape(name: str, m: Matrix, expected: tuple) -> None:
        if m.shape != expected:
            raise FormatError(
                f"Entry '{name}' holds a {m.shape[0]}x{m.shape[1]} matrix, "
                f"topology requires {expected[0]}x{expected[1]}"
            )


def save_network(network: Network, path: str) -> None:
    """
    Save a network to a zip archive at ``path``.

    Args:
        network: The network to save
        path: Destination file; missing parent directories are created

    Raises:
        OSError: If the archive cannot be written

    Example:
        >>> net = Network(2, 1, [3])
        >>> save_network(net, "models/xor.zip")
    """
    try:
        NetworkArchive(path).save(network)
    except OSError as e:
        logger.error(f"Could not save network to '{path}': {e}")
        raise


def load_network(path: str) -> Network:
    """
    Load a network saved by :func:`save_network`.

    Args:
        path: Archive file to read

    Returns:
        Network: The restored network

    Raises:
        OSError: If the archive cannot be opened or read
        FormatError: If the archive is malformed

    Example:
        >>> net = load_network("models/xor.zip")
        >>> net.forward([1, 0])
    """
    try:
        return NetworkArchive(path).load()
    except FormatError as e:
        logger.error(f"Malformed network archive '{path}': {e}")
        raise
    except OSError as e:
        logger.error(f"Could not load network from '{path}': {e}")
        raise


def get_network_metadata(path: str) -> Dict[str, Any]:
    """
    Describe a saved network without decoding its matrices.

    Args:
        path: Archive file to read

    Returns:
        dict: Topology, learning rate, entry names and matrix shapes

    Example:
        >>> metadata = get_network_metadata("models/xor.zip")
        >>> metadata['hidden_sizes']
        [3]
    """
    try:
        opts = NetworkArchive(path).read_options()
    except (OSError, FormatError) as e:
        logger.error(f"Could not read metadata from '{path}': {e}")
        raise

    return {
        'input_size': opts.input_size,
        'output_size': opts.output_size,
        'hidden_sizes': opts.hidden_sizes,
        'learning_rate': opts.learning_rate,
        'weight_paths': opts.weight_paths,
        'bias_paths': opts.bias_paths,
        'weights_shape': opts.weights_shape,
        'biases_shape': opts.biases_shape
    }
