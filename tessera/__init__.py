"""Tessera static site builder.

Compiles a tree of pages, layouts, data files, stylesheets and scripts into a
deployable output directory, and reruns the affected steps while you edit.

The build is a fixed graph of named tasks (``tessera.tasks``); content files
are read, patched and written through ``tessera.datafile.ContentFile``; the
development loop is driven by ``tessera.watch.WatchController``.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
