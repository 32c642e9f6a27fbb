from gp_config_mcp.cli import main

raise SystemExit(main())
