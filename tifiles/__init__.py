"""
tifiles: TI-83 Plus / TI-84 Plus calculator file formats.

- Variable files (.8xp, .8xv, ...): a constant header and comment, an entry
  header with redundant length fields, the variable data, and a 16-bit
  additive checksum. ``VariableWriter`` streams data and backpatches the
  lengths on close; ``VariableReader`` validates every length field and the
  checksum while streaming data out.
- Bundles (.b83/.b84): zip archives of variable files plus METADATA and an
  aggregate CRC32 _CHECKSUM entry, as used by TI-Connect CE.

See the TI link protocol & file format guide for background on the layouts.
"""

from .vartypes import VariableType
from .writer import VariableWriter, dump_variable
from .reader import VariableReader, FinishResult, Variable, load_variable
from .bundle import BundleKind, BundleWriter, BundleReader, read_bundle

__version__ = "0.2.0"

__all__ = [
    "VariableType",
    "VariableWriter",
    "VariableReader",
    "FinishResult",
    "Variable",
    "dump_variable",
    "load_variable",
    "BundleKind",
    "BundleWriter",
    "BundleReader",
    "read_bundle",
]
