"""
Composer — dependency resolution, cache, install store and lifecycle.
"""
