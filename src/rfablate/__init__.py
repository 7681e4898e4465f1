# -*- coding: utf-8 -*-
"""# rfablate

`RF ablation duty-cycle control with closed-loop impedance depth estimation`

A (python) library for driving a multiplexed electrode switch fabric that
alternates between impedance sweeps (LCR meter) and RF ablation pulses, while a
closed-loop estimator infers ablation depth per electrode face from the
impedance stream and retires faces that have reached their target depth.

Package layout:

- `rfablate.electrodes`: electrode topology and switch-fabric permutations.
- `rfablate.meas`: ablation group registry, duty-cycle scheduler, depth estimator.
- `rfablate.device`: hardware drivers (switch matrix, LCR meter) and mocks.
- `rfablate.inference`: depth-inference service client (ZeroMQ).
- `rfablate.system`: devices bound to roles, INI system configurations.
- `rfablate.types`: protocols, roles, interfaces, configs, messages, errors.
- `rfablate.util`: logging, defaults, measurement log writing.
- `rfablate.cli`: the `rfablate` command line.
"""

from ._version import __version__
