from failover_monitor.cli import main

raise SystemExit(main())
