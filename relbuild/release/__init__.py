# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release build subsystem for relbuild.

Provides target validation, update-signing keys, version descriptors,
capability resolution, source stamping, compilation, packaging, signing,
signed manifests, cleanup and verification. The pipeline package ties them
together into one ordered run.
"""
