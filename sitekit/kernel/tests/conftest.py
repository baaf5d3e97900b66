"""
SiteKit kernel test configuration.

Kernel tests build MemoryRepository instances inline and need no shared
fixtures or services.
"""
