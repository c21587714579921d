# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from manifold.synthesis.descriptors import Operation, OperationCall, OperationDescriptor, OperationResult
from manifold.synthesis.openapi import synthesize_description
from manifold.synthesis.routes import OperationSet, synthesize_operations

__all__ = [
    "Operation",
    "OperationCall",
    "OperationDescriptor",
    "OperationResult",
    "OperationSet",
    "synthesize_description",
    "synthesize_operations",
]
