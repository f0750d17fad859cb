"""Global defaults shared by the tiling and scaling stages."""

# Default export tile shape (width, height) in pixels
DEFAULT_TILE_SIZE = (256, 256)

# Tile file name convention relative to the base path, without extension
DEFAULT_TILE_PATTERN = "<z>/<r>_<c>_<s>"

# Placeholders every tile pattern has to carry
TILE_PLACEHOLDERS = ("<s>", "<z>", "<r>", "<c>")

DEFAULT_FORMAT = "jpg"
DEFAULT_QUALITY = 0.85
DEFAULT_PIXEL_TYPE = "rgb"

# Fill value for tile regions outside the exported data
DEFAULT_BACKGROUND = 0

DEFAULT_WORKERS = 1

# Decoded source sections kept in memory while reslicing a TIFF stack
DEFAULT_SECTION_CACHE_BYTES = 1_000_000_000

# Accepted spellings -> canonical format name
FORMATS = {
    "jpg": "jpg",
    "jpeg": "jpg",
    "png": "png",
    "tif": "tif",
    "tiff": "tif",
}

# Accepted spellings -> canonical pixel type
PIXEL_TYPES = {
    "rgb": "rgb",
    "gray": "gray",
    "grey": "gray",
}
