# Variable file signature and header
SIGNATURE = b"**TI83F*\x1a\x0a\x00"  # 11 bytes: "**TI83F*" 1A 0A 00
COMMENT_SIZE = 42
HEADER_SIZE = len(SIGNATURE) + COMMENT_SIZE + 2  # signature, comment, data section length

DEFAULT_COMMENT = b"Created by tifiles variable writer"

# Entry header lengths: 11 without version/flags, 13 with them
ENTRY_HEADER_LEN = 13
ENTRY_HEADER_LEN_NO_FLAGS = 11
ENTRY_HEADER_LENGTHS = (ENTRY_HEADER_LEN_NO_FLAGS, ENTRY_HEADER_LEN)

# Entry flags
FLAG_ARCHIVED = 0x80

# Variable names
NAME_SIZE = 8
THETA = "θ"
THETA_TOKEN = 0x5B

# Entry header (2) + data length (2) + type (1) + name (8) + version/flags (2) + data length (2)
VAR_OVERHEAD = 17
MAX_DATA = 0xFFFF - VAR_OVERHEAD

# Offsets from the start of a variable file, for a 13-byte entry header.
# The writer emits zero placeholders at these positions and patches them on close.
DATA_SECTION_LEN_OFFSET = HEADER_SIZE - 2          # 53, outside the checksum
ENTRY_HEADER_LEN_OFFSET = HEADER_SIZE              # 55
DATA_LEN1_OFFSET = ENTRY_HEADER_LEN_OFFSET + 2     # 57
TYPE_OFFSET = DATA_LEN1_OFFSET + 2                 # 59
NAME_OFFSET = TYPE_OFFSET + 1                      # 60
VERSION_OFFSET = NAME_OFFSET + NAME_SIZE           # 68
DATA_LEN2_OFFSET = VERSION_OFFSET + 2              # 70
LENGTH_PREFIX_OFFSET = DATA_LEN2_OFFSET + 2        # 72, only for prefixed types
DATA_OFFSET = LENGTH_PREFIX_OFFSET                 # payload (including any prefix) starts here

CHECKSUM_SIZE = 2


# Bundle (.b83/.b84) entries and metadata
BUNDLE_METADATA_NAME = "METADATA"
BUNDLE_CHECKSUM_NAME = "_CHECKSUM"
BUNDLE_IDENTIFIER = "TI Bundle"
BUNDLE_FORMAT_VERSION = "1"
BUNDLE_TARGET_TYPE = "CUSTOM"
DEFAULT_BUNDLE_COMMENT = "Generated by tifiles.bundle.BundleWriter"
