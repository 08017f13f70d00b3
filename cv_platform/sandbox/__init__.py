"""
Sandbox package for rendering generated sites inside an isolated preview frame.

Components:
- libraries: Whitelisted packages and the browser globals standing in for them
- compiler: Import/export rewriting and per-module symbol-resolution tables
- preview: The self-contained preview document (runtime, error overlay, visual editing)
- visual_edit: Visual-edit protocol state machine and host-side selection tracking
- component: Streamlit component relaying messages between the app and the frame
"""
