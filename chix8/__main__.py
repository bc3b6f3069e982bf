from chix8.cli import main

raise SystemExit(main())
