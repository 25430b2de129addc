import logging

from config.wizard import WizardConfig
from signup.controller import StepController
from signup.screens import render_screen
from signup.state import FormData, WizardSnapshot
from signup.store import FormDataStore


def main():
    actions = [
        ("advance", {"name": "K", "email": "not-an-email"}),
        ("advance", {"name": "Khushi", "email": "khushi@gmail.com"}),
        ("advance", {"address": "Rd"}),
        ("advance", {"address": "12 MG Road"}),
        ("retreat", {}),
        ("advance", {}),
        ("advance", {"password": "abcde"}),
        ("advance", {"password": "abcdef"}),
        ("submit", {}),
    ]

    # load wizard config
    cfg = WizardConfig.from_env()
    logging.basicConfig(level=cfg.log_level, format="%(levelname)s %(name)s: %(message)s")

    submissions = []

    def on_submit(data: FormData):
        submissions.append(data)

    def show(snapshot: WizardSnapshot):
        print(f"\n{render_screen(snapshot).as_text()}")

    # build store + controller
    store = FormDataStore()
    wizard = StepController(store, on_submit, config=cfg)
    wizard.subscribe(show)

    show(wizard.snapshot())

    # run actions
    for i, (action, values) in enumerate(actions, 1):
        print(f"\nACTION #{i}: {action} {sorted(values)}")
        if action == "advance":
            wizard.advance(**values)
        elif action == "retreat":
            wizard.retreat()
        else:
            wizard.submit()

    print("\nsubmitted:", wizard.submitted)
    print("submissions:", [s.masked() for s in submissions])


if __name__ == "__main__":
    main()
