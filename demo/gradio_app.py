"""CHIP-8 VM Interactive Demo.

A Gradio web interface for running CHIP-8 programs and inspecting the
machine state.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Run the built-in demo, a hand-written example, or an uploaded .ch8 file
    - Choose instruction count, clock rate and random seed
    - Hold down hexpad keys for the run
    - See the framebuffer, registers and an instruction trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import Chip8VM, RomLoadError, Scheduler, load_rom
from chip8_vm.rom import DEFAULT_ROM


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Built-in demo": DEFAULT_ROM,

    # Draws the sixteen font glyphs in two rows
    "Font sheet": bytes([
        0x60, 0x00,  # V0 = 0          digit
        0x61, 0x00,  # V1 = 0          x
        0x62, 0x00,  # V2 = 0          y
        0xF0, 0x29,  # I = font(V0)
        0xD1, 0x25,  # draw 8x5 at (V1, V2)
        0x70, 0x01,  # V0 += 1
        0x71, 0x08,  # V1 += 8
        0x40, 0x08,  # skip if V0 != 8
        0x12, 0x18,  # jump to next row
        0x40, 0x10,  # skip if V0 != 16
        0x12, 0x1E,  # jump to halt
        0x12, 0x06,  # jump to I = font(V0)
        0x61, 0x00,  # next row: V1 = 0
        0x62, 0x08,  # V2 = 8
        0x12, 0x06,  # jump to I = font(V0)
        0x12, 0x1E,  # halt: jump to self
    ]),

    # Shows the digit of the next hexpad key pressed
    "Key echo": bytes([
        0xF0, 0x0A,  # wait for key -> V0
        0x00, 0xE0,  # clear
        0xF0, 0x29,  # I = font(V0)
        0x61, 0x1C,  # V1 = 28
        0x62, 0x0D,  # V2 = 13
        0xD1, 0x25,  # draw
        0x12, 0x00,  # loop
    ]),
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(example: str, rom_file, cycles: int, clock: float, seed: int, keys: str) -> tuple:
    """Execute a program and return the results.

    Args:
        example: Name of an entry in EXAMPLE_PROGRAMS
        rom_file: Uploaded .ch8 file (overrides the example when present)
        cycles: Number of instruction steps to run
        clock: Instruction clock in Hz, used to pace the timers
        seed: Seed for the random number instruction
        keys: Hexpad digits (0-F) held down for the run

    Returns:
        Tuple of (display_text, summary_text, registers_text, trace_text)
    """
    if rom_file is not None:
        try:
            program = load_rom(getattr(rom_file, "name", rom_file))
        except RomLoadError as e:
            return "", f"Error: {e}", "", ""
    else:
        program = EXAMPLE_PROGRAMS.get(example, DEFAULT_ROM)

    try:
        held = [int(char, 16) for char in keys.replace(" ", "")]
    except ValueError:
        return "", f"Error: keys must be hexadecimal digits, got {keys!r}", "", ""

    vm = Chip8VM(seed=int(seed or 0), trace_limit=100)
    scheduler = Scheduler(vm, clock_freq=clock)
    scheduler.load(program)

    # Step the VM with one timer tick and key poll per 1/60 s worth of instructions
    steps_per_tick = max(1, int(scheduler.clock_freq // 60))
    for digit in held:
        vm.update_key(digit, True)
    for index in range(int(cycles)):
        vm.step()
        if (index + 1) % steps_per_tick == 0:
            vm.tick_timers()
            vm.refresh_keys()

    display_text = vm.render_text(on="█", off=" ")

    summary = vm.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Program: {len(program)} bytes",
        f"Cycles: {summary['cycles']}",
        f"Clock: {scheduler.clock_freq:g} Hz",
        f"PC: {summary['pc']:03X}   I: {summary['i']:03X}",
        f"Delay: {summary['delay']}   Sound: {summary['sound']}",
        f"Waiting for key: {'Yes' if summary['waiting'] else 'No'}",
        f"Lit pixels: {summary['lit_pixels']}",
    ]
    if summary["errors"]:
        summary_lines.append(f"\nUnknown opcodes in trace: {len(summary['errors'])}")

    reg_lines = ["REGISTERS", "=" * 30]
    for name, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {name}: {value:>3} (0x{value:02X}){marker}")

    trace_lines = ["EXECUTION TRACE (last 100)", "=" * 60]
    for entry in vm.trace:
        trace_lines.append(
            f"{entry.pc:03X}: {entry.word:04X}  {entry.decode_result.key:<16} {entry.decode_result.params}"
        )

    return display_text, "\n".join(summary_lines), "\n".join(reg_lines), "\n".join(trace_lines)


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHIP-8 VM Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHIP-8 Virtual Machine

        Runs a CHIP-8 program for a fixed number of instructions and shows
        the 64x32 framebuffer and machine state.

        **Pipeline**: `fetch -> decode -> key -> registry -> execute -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Built-in demo",
                    label="Example"
                )
                rom_upload = gr.File(
                    label="Or upload a .ch8 ROM",
                    file_types=[".ch8"]
                )

                gr.Markdown("### Settings")

                cycles = gr.Slider(
                    minimum=1,
                    maximum=20000,
                    value=600,
                    step=1,
                    label="Instructions"
                )
                with gr.Row():
                    clock = gr.Slider(
                        minimum=1,
                        maximum=1000,
                        value=600,
                        step=10,
                        label="Clock (Hz)"
                    )
                    seed = gr.Number(value=0, precision=0, label="Random seed")
                keys = gr.Textbox(
                    value="",
                    label="Held hexpad keys",
                    placeholder="e.g. 5 or 4 6"
                )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                display_output = gr.Textbox(
                    label="Display (64x32)",
                    lines=32,
                    max_lines=32,
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(label="Summary", lines=10, interactive=False)
                    registers_output = gr.Textbox(label="Registers", lines=18, interactive=False)

                trace_output = gr.Textbox(label="Execution Trace", lines=15, interactive=False)

        with gr.Accordion("Hexpad Layout", open=False):
            gr.Markdown("""
            | | | | |
            |---|---|---|---|
            | 1 | 2 | 3 | C |
            | 4 | 5 | 6 | D |
            | 7 | 8 | 9 | E |
            | A | 0 | B | F |
            """)

        run_button.click(
            fn=run_program,
            inputs=[example_dropdown, rom_upload, cycles, clock, seed, keys],
            outputs=[display_output, summary_output, registers_output, trace_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
