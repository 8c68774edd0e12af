from dupindex.core.hasher import ALGORITHMS
from dupindex.core.models import ActionKind, LinkKind, SymlinkPolicy

ALGORITHM_CHOICES = list(ALGORITHMS.keys())

ALGORITHM_HELP_TEXT = (
    "Content digest algorithm:\n"
    "  sha256   : SHA-256 (default)\n"
    "  sha3-256 : SHA3-256\n"
    "  blake2b  : BLAKE2b with a 32-byte digest\n"
    "  xxh128   : xxHash XXH3-128 (fastest, non-cryptographic)\n"
    "Example    : %(prog)s -i ~/Downloads --algorithm xxh128\n"
)

SYMLINK_ALIASES = {
    "skip": SymlinkPolicy.SKIP,
    "follow-once": SymlinkPolicy.FOLLOW_ONCE,
    "once": SymlinkPolicy.FOLLOW_ONCE,
    "follow": SymlinkPolicy.FOLLOW,
}

SYMLINK_CHOICES = list(SYMLINK_ALIASES.keys())

SYMLINK_HELP_TEXT = (
    "How symbolic links to files are treated (directory links are never followed):\n"
    "  skip        : Ignore symlinks\n"
    "  follow-once : Index a symlink only if its target was not seen already (default)\n"
    "  follow      : Index every symlink as a member of its target's group\n"
)

# CLI action name -> (engine action, extra parameters)
ACTION_ALIASES = {
    "trash": (ActionKind.DELETE, {}),
    "delete": (ActionKind.DELETE, {}),
    "hardlink": (ActionKind.LINK, {"link_kind": LinkKind.HARDLINK}),
    "symlink": (ActionKind.LINK, {"link_kind": LinkKind.SYMLINK}),
    "move": (ActionKind.MOVE, {}),
}

ACTION_CHOICES = list(ACTION_ALIASES.keys())

ACTION_HELP_TEXT = (
    "What --keep-one does with every file except the first of each group:\n"
    "  trash    : Move to the system trash (default)\n"
    "  delete   : Delete permanently\n"
    "  hardlink : Replace with a hard link to the kept file\n"
    "  symlink  : Replace with a symbolic link to the kept file\n"
    "  move     : Move into the folder given by --dest\n"
)

EPILOG_TEXT = """
Examples:
  Basic usage - find duplicates in Downloads folder
  %(prog)s -i ~/Downloads

  Filter files by size and extensions and find duplicates
  %(prog)s -i ~/Downloads -m 500KB -M 10MB -x .jpg .png

  Same as above + move duplicates to trash (with confirmation prompt)
  %(prog)s -i ~/Downloads -m 500KB -M 10MB -x .jpg .png --keep-one

  Replace duplicates with hard links, no confirmation, JSON report (for scripts)
  %(prog)s -i ~/Photos --keep-one --action hardlink --force --json > report.json

  Collect duplicates into a review folder
  %(prog)s -i ~/Photos --keep-one --action move --dest ~/Photos-duplicates
"""
