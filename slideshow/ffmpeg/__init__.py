"""FFmpeg boundary for the slideshow pipeline.

Modules:
- runner: Subprocess execution, cancellation and logging helpers
- filters: Typed filter descriptors rendered to FFmpeg syntax
- concat: ffconcat list rendering for the frame sequence
- progress: `-progress pipe:1` parsing and a console bar
"""
