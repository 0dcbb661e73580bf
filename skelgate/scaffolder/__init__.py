"""skelgate scaffolder -- instantiates project skeletons.

Quick usage::

    from skelgate.scaffolder import InstantiationEngine, TemplateStore, collect, resolve

    store = TemplateStore(["./templates"])
    skeleton = store.get("python-package")
    values = collect(skeleton.manifest.variables, {"project_name": "Demo"})
    table = resolve(skeleton.placeholders, values)
    report = await InstantiationEngine().instantiate(skeleton, table, "/tmp/out")
"""

from skelgate.scaffolder.engine import InstantiationEngine, InstantiationReport, WrittenPath
from skelgate.scaffolder.resolver import SubstitutionTable, collect, parse_var_args, resolve
from skelgate.scaffolder.store import (
    Skeleton,
    SkeletonEntry,
    TemplateManifest,
    TemplateStore,
    VariableSpec,
)
from skelgate.scaffolder.templates import TemplateRenderer

__all__ = [
    "InstantiationEngine",
    "InstantiationReport",
    "Skeleton",
    "SkeletonEntry",
    "SubstitutionTable",
    "TemplateManifest",
    "TemplateRenderer",
    "TemplateStore",
    "VariableSpec",
    "WrittenPath",
    "collect",
    "parse_var_args",
    "resolve",
]
