from phonectl.cli.main import main

raise SystemExit(main())
