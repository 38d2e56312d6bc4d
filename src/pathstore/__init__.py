"""pathstore - path-addressed content store on top of S3-compatible object storage.

Provides filesystem-like semantics for a flat key namespace:
- Destination path sanitization and collision-free move planning
- Cycle prevention for folder moves
- Recursive key enumeration with pagination
- Append-only labeled version snapshots
"""

__version__ = "0.4.0"
