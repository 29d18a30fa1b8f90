"""vmlcompose -- time resolution and playback for VML compositions.

Resolve declarative scene/cue/layer markup, where times may be formulas
over other elements' times, into an absolute timeline, then drive
frame-based clocks that fire scene, cue and visibility transitions.
Playback and patch batches are declared in YAML manifests.
"""
