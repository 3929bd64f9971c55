# Utilities
# Folder naming and relocation helpers
