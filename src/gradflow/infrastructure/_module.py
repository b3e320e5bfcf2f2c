"""
Infrastructure module base class.

This module provides a concrete `Module` implementation that satisfies the
domain-level `IModule` protocol. It implements the conveniences layers rely on:

- parameter registration and storage
- submodule registration and storage
- recursive parameter traversal (`parameters`, `named_parameters`)
- `__call__` forwarding to `forward`
- `zero_grad` over every registered parameter
"""

from __future__ import annotations

from typing import Dict, Iterator, Optional

from ..domain._module import IModule
from ._parameter import Parameter


class Module(IModule):
    """
    Base class for layers.

    Subclasses create `Parameter` instances (registered implicitly by
    attribute assignment or explicitly through `register_parameter`) and
    implement `forward`.

    Attributes
    ----------
    _parameters : Dict[str, Parameter]
        Parameters owned directly by this module.
    _modules : Dict[str, Module]
        Child modules.
    """

    def __init__(self) -> None:
        super().__setattr__("_parameters", {})
        super().__setattr__("_modules", {})

    def __setattr__(self, name: str, value) -> None:
        """
        Auto-register `Parameter` and `Module` attributes.

        Assigning None to a registered name unregisters it.
        """
        if name in {"_parameters", "_modules"}:
            super().__setattr__(name, value)
            return

        if value is None:
            self._parameters.pop(name, None)
            self._modules.pop(name, None)
        elif isinstance(value, Parameter):
            self._parameters[name] = value
        elif isinstance(value, Module):
            self._modules[name] = value

        super().__setattr__(name, value)

    def register_parameter(self, name: str, param: Optional[Parameter]) -> None:
        """
        Register `param` under `name`; None is ignored.
        """
        if param is None:
            return
        self._parameters[name] = param
        super().__setattr__(name, param)

    def register_module(self, name: str, module: Optional["Module"]) -> None:
        """
        Register a child module under `name`; None is ignored.
        """
        if module is None:
            return
        self._modules[name] = module
        super().__setattr__(name, module)

    def parameters(self) -> Iterator[Parameter]:
        """
        Yield this module's parameters, then those of each submodule.
        """
        for p in self._parameters.values():
            yield p
        for m in self._modules.values():
            yield from m.parameters()

    def named_parameters(self, prefix: str = "") -> Iterator[tuple[str, Parameter]]:
        """
        Yield `(qualified_name, parameter)` pairs, recursing into children.
        """
        base = prefix + "." if prefix else ""
        for name, p in self._parameters.items():
            yield (f"{base}{name}", p)
        for child_name, child in self._modules.items():
            yield from child.named_parameters(f"{base}{child_name}")

    def children(self) -> Dict[str, "Module"]:
        return dict(self._modules)

    def zero_grad(self, set_to_none: bool = True) -> None:
        for p in self.parameters():
            p.zero_grad(set_to_none=set_to_none)

    def forward(self, *args, **kwargs):
        raise NotImplementedError

    def __call__(self, *args, **kwargs):
        return self.forward(*args, **kwargs)
