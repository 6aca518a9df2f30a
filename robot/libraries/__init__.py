"""Robot Framework keyword libraries for Qube Mesh workflow tests.

The libraries mirror the pytest-bdd step definitions in tests/step_defs/.
Each one uses the @keyword decorator to map clean Python function names to
scenario step text.

Libraries:
    QubeMeshKeywords: Navigation, agent selection, scenario data and workflow runs

Usage:
    *** Settings ***
    Library    ../libraries/qube_mesh_keywords.py

    *** Test Cases ***
    Offboard A Supplier
        The Qube Mesh Environment Is Configured
        Qube Mesh Is Open For Agent Index    0
        The Agent Is Chosen From The Auto Invoke Picker
        Load Scenario Data    supplier offboarding    1
        The Workflow Runs For The Selected Agent
        The Workflow Reaches A Terminal State
"""
