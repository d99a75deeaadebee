from action_plan_engine.cli import main

main()
