from pginspect.cli import main

raise SystemExit(main())
