import asyncio

import rfablate.system
import rfablate.types
import rfablate.util
from rfablate.cli.base import print_run_summary
from rfablate.meas.run import AblationRun

# Start logging to stdout
rfablate.util.start_log(log_to_stdout=True, log_to_file=False, log_level="INFO")

# Define the system and open its devices
system = rfablate.system.AblationSystem(
    "mock",
    # "mock_zmq",  # needs `rfablate mock-inference` running
    # "bench",
)
system.startup()

config = rfablate.types.RunConfig(
    interval_s=0.05,  # short holds for the mock
    combinations=["N,E", "S", "W"],
    limits=[3, 0, 0],  # N,E stops after 3 pulses, S and W on depth feedback
    targets={"S": 2.0, "W": 4.0},
    pre_ablation_ms=100,
    save_dir="./mock_output/",
)

run = AblationRun(system, config)
try:
    metadata = asyncio.run(run.run())
    print_run_summary(metadata)
finally:
    system.packdown()
    rfablate.util.shutdown_log()
